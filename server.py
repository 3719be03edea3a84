import asyncio
import logging
import threading
from typing import Any, Callable, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from rulebuilder import settings
from rulebuilder.completion_provider import CancellationToken
from rulebuilder.exceptions import InvalidArgument, PipelineFailure, ProviderFailure
from rulebuilder.pipeline import RulePipeline, build_pipeline

settings.configure_logging()
logger = logging.getLogger("rulebuilder.server")

app = FastAPI()

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class InputDto(BaseModel):
    text: Optional[str] = None


class PromptDto(BaseModel):
    prompt: Optional[str] = None


_pipeline: Optional[RulePipeline] = None
_pipeline_lock = threading.Lock()


def get_pipeline() -> RulePipeline:
    global _pipeline
    with _pipeline_lock:
        if _pipeline is None:
            _pipeline = build_pipeline()
        return _pipeline


def set_pipeline(pipeline: Optional[RulePipeline]) -> None:
    global _pipeline
    with _pipeline_lock:
        _pipeline = pipeline


def _to_payload(value: Any) -> Any:
    if isinstance(value, list):
        return [_to_payload(v) for v in value]
    if hasattr(value, "to_dict"):
        return value.to_dict()
    return value


async def _run(operation: Callable[..., Any], text: Optional[str]) -> JSONResponse:
    if not text or not text.strip():
        return JSONResponse(status_code=400, content={"error": "Text is required."})

    pipeline = get_pipeline()
    cancel = CancellationToken()
    try:
        result = await asyncio.to_thread(operation, pipeline, text, cancel)
        return JSONResponse(content={"result": _to_payload(result)})
    except asyncio.CancelledError:
        cancel.cancel()
        raise
    except InvalidArgument as e:
        return JSONResponse(status_code=400, content={"error": str(e)})
    except PipelineFailure as e:
        return JSONResponse(status_code=500, content={"error": e.message, "issues": e.issues})
    except ProviderFailure as e:
        logger.warning(f"provider failure: {e}")
        return JSONResponse(status_code=502, content={"error": str(e)})


@app.post("/api/rulepipeline/extract")
async def extract(dto: InputDto):
    return await _run(lambda p, text, cancel: p.extract_rule_pipeline(text, cancel), dto.text)


@app.post("/api/rulepipeline/refine")
async def refine(dto: InputDto):
    return await _run(lambda p, text, cancel: p.refine(text, cancel), dto.text)


@app.post("/api/rulepipeline/validate")
async def validate(dto: InputDto):
    return await _run(lambda p, text, cancel: p.validate(text, cancel), dto.text)


@app.post("/api/rulepipeline/explain")
async def explain(dto: InputDto):
    return await _run(lambda p, text, cancel: p.explain(text, cancel), dto.text)


@app.post("/api/rulepipeline/extract-multiple")
async def extract_multiple(dto: InputDto):
    return await _run(lambda p, text, cancel: p.extract_multiple_rules(text, cancel), dto.text)


@app.post("/api/rulepipeline/cluster")
async def cluster(dto: InputDto):
    return await _run(lambda p, text, cancel: p.cluster_rules(text, cancel), dto.text)


@app.post("/api/plugin/summarize")
async def summarize(dto: InputDto):
    return await _run(lambda p, text, cancel: p.summarize(text, cancel), dto.text)


@app.post("/api/ai/ask")
async def ask(dto: PromptDto):
    return await _run(lambda p, prompt, cancel: p.ask(prompt, cancel), dto.prompt)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
