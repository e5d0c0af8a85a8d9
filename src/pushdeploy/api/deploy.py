"""Deploy API: accepts a pushed archive and starts its deploy script."""

import structlog
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import PlainTextResponse
from starlette.datastructures import UploadFile
from starlette.exceptions import HTTPException as StarletteHTTPException
from starlette.formparsers import MultiPartException

from pushdeploy.api.auth import require_bearer
from pushdeploy.core.config import Settings
from pushdeploy.deploy.service import DeploymentService

logger = structlog.get_logger()

# Every method is routed here so that authentication runs before the method check
ROUTED_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"]


def create_deploy_router(service: DeploymentService, settings: Settings) -> APIRouter:
    """Build the /deploy router bound to ``service`` and the configured API key."""
    router = APIRouter()
    authenticated = require_bearer(settings.api_key_value())

    @router.api_route("/deploy", methods=ROUTED_METHODS, response_class=PlainTextResponse)
    @authenticated
    async def deploy_endpoint(request: Request) -> PlainTextResponse:
        if request.method != "POST":
            raise HTTPException(status_code=405, detail="Method not allowed", headers={"Allow": "POST"})

        try:
            form = await request.form()
        except (StarletteHTTPException, MultiPartException, ValueError) as exc:
            raise HTTPException(status_code=400, detail=f"Malformed multipart body: {exc}") from exc

        try:
            upload = form.get(settings.upload_field)
            if not isinstance(upload, UploadFile):
                raise HTTPException(status_code=400, detail="Failed to get uploaded file")

            logger.info("Deployment upload received", filename=upload.filename, size=upload.size)
            handle = await service.deploy(upload.file)
        finally:
            await form.close()

        return PlainTextResponse(f"Deployment started successfully in {handle.workspace.root}\n")

    return router
