"""Release webhook receiver."""

import hashlib
import hmac
import json
import logging
from typing import Optional

from fastapi import BackgroundTasks, FastAPI, Request
from fastapi.responses import PlainTextResponse

from .errors import DeployError
from .models import ReleaseTrigger
from .services.config_loader import ProjectRegistry

logger = logging.getLogger("tagdeploy")

SIGNATURE_HEADER = "x-hub-signature-256"
SIGNATURE_PREFIX = "sha256="


def verify_signature(secret: str, body: bytes, signature_header: Optional[str]) -> bool:
    if not signature_header or not signature_header.startswith(SIGNATURE_PREFIX):
        logger.warning("Missing or malformed signature header")
        return False

    expected = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    valid = hmac.compare_digest(expected, signature_header[len(SIGNATURE_PREFIX):].lower())
    if not valid:
        logger.warning("Signature does not match")
    return valid


def _release_fields(payload):
    if not isinstance(payload, dict):
        return None, None
    repository = payload.get("repository")
    release = payload.get("release")
    full_name = repository.get("full_name") if isinstance(repository, dict) else None
    tag_name = release.get("tag_name") if isinstance(release, dict) else None
    return full_name, tag_name


def create_app(deployer, registry: ProjectRegistry, secret: str) -> FastAPI:
    app = FastAPI(title="tagdeploy")

    @app.get("/health")
    async def health():
        return {"status": "alive"}

    @app.post("/webhook")
    async def webhook(request: Request, background_tasks: BackgroundTasks):
        logger.info("Webhook received")
        body = await request.body()
        if not verify_signature(secret, body, request.headers.get(SIGNATURE_HEADER)):
            return PlainTextResponse("Unauthorized", status_code=401)

        try:
            payload = json.loads(body)
        except ValueError as exc:
            logger.error("Failed to parse JSON payload: %s", exc)
            return PlainTextResponse("Invalid JSON", status_code=400)

        repository, tag = _release_fields(payload)
        if not repository or not tag:
            logger.info("Not a release payload; ignored")
            return PlainTextResponse("Not a release payload; ignored")

        if payload.get("action") != "published":
            logger.info("Action is not 'published'; ignored")
            return PlainTextResponse("Action not published; ignored")

        try:
            config = registry.get(repository)
        except DeployError as exc:
            logger.error("Failed to read projects file: %s", exc)
            return PlainTextResponse("Server error", status_code=500)

        if config is None:
            logger.warning("Ignoring untracked repo: %s", repository)
            return PlainTextResponse("Repo not found", status_code=404)

        trigger = ReleaseTrigger(repository=repository, tag=tag, config=config)
        background_tasks.add_task(deployer.handle_trigger, trigger)
        return PlainTextResponse("OK")

    return app
