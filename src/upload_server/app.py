import asyncio
import html
import logging
from typing import Any, Dict, Optional

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from starlette.concurrency import run_in_threadpool

from . import __version__
from .config import ServerConfig
from .decoder import RequestDecoder
from .errors import (
    ClientError,
    RequestTimeoutError,
    StartupError,
    StorageError,
    UploadServerError,
)
from .logger import create_logger, resolve_level
from .models import UploadKind
from .writer import PayloadWriter


SUCCESS_MESSAGES = {
    UploadKind.FILE: "File uploaded!",
    UploadKind.TEXT: "Text saved!",
}

HOME_PAGE = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <title>{name}</title>
</head>
<body>
  <h1>{name}</h1>
  <p>Push a file or a piece of text to this machine.</p>

  <h3>Upload a file</h3>
  <form action="/file" method="post" enctype="multipart/form-data">
    <input type="file" name="file">
    <button type="submit">Upload</button>
  </form>

  <h3>Send text</h3>
  <form action="/text" method="post">
    <textarea name="text" rows="8" cols="60"></textarea><br>
    <button type="submit">Send</button>
  </form>

  <h3>From the command line</h3>
  <pre>
curl -F 'file=@report.pdf' http://HOST:PORT/
curl -H 'Content-Type: text/plain' --data-binary 'hello world' http://HOST:PORT/
  </pre>
  <p>Maximum upload size: {max_size} bytes.</p>
</body>
</html>
"""


class UploadServer:
    """
    HTTP front end: home page plus the decode -> write upload pipeline.
    """

    def __init__(self, config: ServerConfig):
        """
        Initialize the upload server.

        Args:
            config: Resolved server configuration. The uploads directory must
                already exist; it is never created here.
        """
        self.config = config
        self.logger = create_logger('UploadServer.App', level=config.log_level)
        self.decoder = RequestDecoder(max_body_size=config.max_body_size)
        self.writer = PayloadWriter(config)

    def create_app(self) -> FastAPI:
        """
        Create and configure FastAPI application.

        Returns:
            FastAPI: Configured FastAPI application instance
        """
        app = FastAPI(
            title=self.config.name,
            description="Push a file or text to a directory on this machine",
            version=__version__,
        )

        # Let browser pages on other origins push text and files
        app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["*"],
        )

        @app.get("/", response_class=HTMLResponse)
        async def home():
            """Usage page with upload forms."""
            return HTMLResponse(self.render_home())

        @app.post("/")
        async def upload(request: Request):
            """Accept either a multipart file or a text body."""
            return await self.handle_upload(request)

        @app.post("/file")
        async def upload_file(request: Request):
            return await self.handle_upload(request, expect=UploadKind.FILE)

        @app.post("/text")
        async def upload_text(request: Request):
            return await self.handle_upload(request, expect=UploadKind.TEXT)

        @app.get("/health")
        async def health_check():
            """Health check endpoint."""
            return {"status": "ok", "service": self.config.name}

        return app

    def render_home(self) -> str:
        return HOME_PAGE.format(
            name=html.escape(self.config.name),
            max_size=self.config.max_body_size,
        )

    async def handle_upload(
        self,
        request: Request,
        expect: Optional[UploadKind] = None,
    ) -> JSONResponse:
        """
        Decode the request and store its payload.

        Every failure is turned into an error response here so that a bad
        request never reaches the server loop.

        Args:
            request: FastAPI request object
            expect: Restrict to one kind of upload (None auto-detects)

        Returns:
            JSONResponse: Confirmation, or an error with the matching status
        """
        client = request.client.host if request.client else "unknown"

        try:
            upload = await self._decode(request, expect)
            artifact = await run_in_threadpool(self.writer.write, upload)
        except ClientError as error:
            self.logger.warning(f"Rejected upload from {client}: {error.message}")
            return self._error_response(error)
        except StorageError as error:
            self.logger.error(f"Storage error for upload from {client}: {error.message}")
            return self._error_response(error)
        except Exception as error:
            self.logger.exception(f"Unexpected error handling upload from {client}: {error}")
            return self._error_response(UploadServerError(f"Unexpected error: {error}"))

        self.logger.info(
            f"{artifact.kind.value} upload from {client} saved as {artifact.name}"
        )
        return JSONResponse(
            status_code=200,
            content={
                "message": SUCCESS_MESSAGES[artifact.kind],
                "kind": artifact.kind.value,
                "size": artifact.size,
                "metadata": artifact.metadata_path is not None,
            },
        )

    async def _decode(self, request: Request, expect: Optional[UploadKind]):
        # Bounds the total time spent receiving and parsing the body.
        try:
            return await asyncio.wait_for(
                self.decoder.decode(request, expect=expect),
                timeout=self.config.body_timeout,
            )
        except asyncio.TimeoutError:
            raise RequestTimeoutError(
                f"Body not received within {self.config.body_timeout:g} seconds"
            )

    @staticmethod
    def _error_response(error: UploadServerError) -> JSONResponse:
        return JSONResponse(status_code=error.status_code, content=error.to_dict())

    def get_server_info(self) -> Dict[str, Any]:
        """
        Get server configuration information.

        Returns:
            dict: Server configuration details
        """
        return {
            "name": self.config.name,
            "listen": self.config.listen,
            "uploads_dir": str(self.config.uploads_dir),
            "save_meta": self.config.save_meta,
            "max_body_size": self.config.max_body_size,
            "body_timeout": self.config.body_timeout,
        }

    def run(self) -> None:
        """
        Serve until interrupted (blocking call).

        Raises:
            StartupError: If uvicorn could not start serving, e.g. because
                the listen address is already in use
        """
        info = self.get_server_info()
        self.logger.info(f"{info['name']} listening on http://{info['listen']}")
        self.logger.info(f"Uploads directory: {info['uploads_dir']}")
        self.logger.info(f"Metadata sidecars: {'on' if info['save_meta'] else 'off'}")

        try:
            uvicorn.run(
                self.create_app(),
                host=self.config.host,
                port=self.config.port,
                log_level=getattr(logging, resolve_level(self.config.log_level), logging.INFO),
                timeout_keep_alive=5,
            )
        except SystemExit as exit_:
            # uvicorn reports bind failures by logging and calling sys.exit()
            if exit_.code:
                raise StartupError(
                    f"Cannot listen on {self.config.listen} "
                    "(address already in use or not available)"
                ) from exit_
            raise
