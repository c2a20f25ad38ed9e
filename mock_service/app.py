import asyncio

from fastapi import FastAPI, Request, Response
from fastapi.responses import PlainTextResponse

app = FastAPI(title="Mock Service")


@app.get("/api/demo")
async def demo():
    return {"message": "ok"}


@app.get("/api/status/{code}")
async def status(code: int):
    return Response(
        content=f'{{"status": {code}}}',
        status_code=code,
        media_type="application/json",
    )


@app.get("/api/slow")
async def slow(ms: int = 200):
    await asyncio.sleep(min(ms, 5000) / 1000)
    return {"message": "ok", "delayed_ms": ms}


@app.get("/api/text")
async def text():
    return PlainTextResponse("plain ok")


@app.get("/api/bad-json")
async def bad_json():
    return Response(content="{not json", media_type="application/json")


@app.post("/api/echo")
async def echo(request: Request):
    return {"received": await request.json()}


# Run with: uvicorn mock_service.app:app --port 8001 --reload
