import logging
import uuid
from datetime import datetime
from typing import Callable, Optional

from fastapi import FastAPI, File, Request, UploadFile
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.concurrency import run_in_threadpool

from .config import Settings
from .errors import StampError, ValidationError
from .signing import SigningService

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return str(uuid.uuid4())


def validate_upload(file: Optional[UploadFile]) -> None:
    if file is None:
        raise ValidationError("No file uploaded.")
    if not (file.filename or "").lower().endswith(".pdf"):
        raise ValidationError("Only PDF files allowed.")


def create_app(
    settings: Optional[Settings] = None,
    *,
    id_factory: Optional[Callable[[], str]] = None,
    clock: Optional[Callable[[], datetime]] = None,
    service: Optional[SigningService] = None,
) -> FastAPI:
    settings = settings or Settings.from_env()
    id_factory = id_factory or _new_id
    clock = clock or datetime.now
    service = service or SigningService.from_settings(settings)

    for d in [settings.signed_dir, settings.upload_dir]:
        d.mkdir(parents=True, exist_ok=True)

    app = FastAPI(title="verifystamp")
    app.state.settings = settings

    @app.exception_handler(StampError)
    async def stamp_error(request: Request, exc: StampError):
        if exc.status_code >= 500:
            logger.error("Signing failed: %s", exc, exc_info=exc)
        else:
            logger.info("Rejected %s: %s", request.url.path, exc)
        return JSONResponse({"detail": str(exc)}, status_code=exc.status_code)

    @app.get("/healthz")
    def healthz():
        return {"ok": True}

    @app.post("/api/pdfsigning/upload")
    async def upload(request: Request, file: UploadFile | None = File(None)):
        validate_upload(file)
        data = await file.read()
        if not data:
            raise ValidationError("Uploaded file is empty.")

        # other requests may be creating these at the same time
        settings.signed_dir.mkdir(parents=True, exist_ok=True)
        settings.upload_dir.mkdir(parents=True, exist_ok=True)

        uid = id_factory()
        original_path = settings.upload_dir / f"{uid}.pdf"
        signed_path = settings.signed_dir / f"signed_{uid}.pdf"
        base_url = (settings.public_base_url or str(request.base_url)).rstrip("/")
        public_url = f"{base_url}/signed/{signed_path.name}"

        original_path.write_bytes(data)
        logger.info("Signing %s (%d bytes) as %s", file.filename, len(data), uid)

        try:
            result = await run_in_threadpool(
                service.sign, original_path, signed_path, public_url, timestamp=clock()
            )
        finally:
            original_path.unlink(missing_ok=True)
        return {"signedPdfUrl": result.public_url}

    app.mount("/signed", StaticFiles(directory=settings.signed_dir), name="signed")
    return app
