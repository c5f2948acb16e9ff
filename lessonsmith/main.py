from __future__ import annotations

import os

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError

from lessonsmith.ai.errors import GenerationError
from lessonsmith.api.routes import lessons, tasks
from lessonsmith.core.exceptions import generation_exception_handler, global_exception_handler, http_exception_handler, request_validation_exception_handler
from lessonsmith.core.lifespan import lifespan
from lessonsmith.core.middleware import RequestLoggingMiddleware

app = FastAPI(lifespan=lifespan, docs_url=None, redoc_url=None)

app.add_exception_handler(Exception, global_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(GenerationError, generation_exception_handler)
app.add_exception_handler(RequestValidationError, request_validation_exception_handler)

app.add_middleware(RequestLoggingMiddleware)


@app.get("/health", include_in_schema=False)
async def health_check() -> dict[str, str]:
  """Return a simple health status."""
  return {"status": "ok", "version": "0.1.0"}


app.include_router(lessons.router, prefix="/v1/lessons", tags=["lessons"])
app.include_router(tasks.router, prefix="/internal", tags=["tasks"])


def serve() -> None:
  """Run the API under uvicorn; LESSONSMITH_HOST and LESSONSMITH_PORT pick the bind address."""
  uvicorn.run("lessonsmith.main:app", host=os.getenv("LESSONSMITH_HOST", "0.0.0.0"), port=int(os.getenv("LESSONSMITH_PORT", "8002")), server_header=False)


if __name__ == "__main__":
  serve()
