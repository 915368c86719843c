from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import Response

from services.cache_storage import ShellRequest, ShellResponse
from services.offline_shell import OfflineShell

# Catch-all; must be included after every API router
router = APIRouter(tags=["shell"])

def get_shell(request: Request) -> OfflineShell:
    shell = getattr(request.app.state, "shell", None)
    if shell is None:
        raise HTTPException(status_code=404, detail="Not Found")
    return shell

async def to_shell_request(request: Request) -> ShellRequest:
    url = request.url.path
    if request.url.query:
        url = f"{url}?{request.url.query}"
    return ShellRequest(
        method=request.method,
        url=url,
        headers=dict(request.headers),
        body=await request.body(),
    )

def to_response(shell_response: ShellResponse) -> Response:
    response = Response(content=shell_response.body, status_code=shell_response.status_code)
    for name, value in shell_response.headers:
        response.headers.append(name, value)
    return response

@router.api_route(
    "/{path:path}",
    methods=["GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    include_in_schema=False,
)
async def serve_through_shell(request: Request, shell: OfflineShell = Depends(get_shell)):
    shell_request = await to_shell_request(request)
    return to_response(await shell.handle(shell_request))
