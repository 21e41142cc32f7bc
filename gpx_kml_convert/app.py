from fastapi import FastAPI, File, UploadFile, Form, HTTPException, Request
from fastapi.responses import Response, HTMLResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.concurrency import run_in_threadpool
from typing import Optional

from . import __version__
from .config import Settings, setup_logging
from .converter import ConvertOptions, convert_bytes
from .errors import ConversionError
from .writer import KML_MEDIA_TYPE


settings = Settings.from_env()

app = FastAPI(title="GPX → KML Converter", version=__version__)

logger = setup_logging(settings.log_level)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _too_large() -> HTTPException:
    return HTTPException(status_code=413, detail=f"GPX larger than {settings.max_upload_mb:g} MB")


def _run_conversion(data: bytes, options: ConvertOptions, label: str) -> bytes:
    if len(data) > settings.max_upload_bytes:
        raise _too_large()
    try:
        kml_bytes = convert_bytes(data, options)
    except ConversionError as e:
        logger.warning("rejected %s: %s", label, e)
        raise HTTPException(status_code=400, detail=str(e))
    logger.info("converted %s (%d bytes GPX -> %d bytes KML)", label, len(data), len(kml_bytes))
    return kml_bytes


@app.get("/healthz")
def healthz():
    return {"status": "ok"}


@app.get("/", response_class=HTMLResponse)
def index():
    return INDEX_HTML


@app.post("/api/convert")
def api_convert(
    file: UploadFile = File(..., description="GPX file"),
    name: Optional[str] = Form(default=None),
    strict: Optional[int] = Form(default=None),
    include_times: Optional[int] = Form(default=None),
    compact: Optional[int] = Form(default=None),
):
    if not file.filename or not file.filename.lower().endswith(".gpx"):
        raise HTTPException(status_code=400, detail="Please upload a .gpx file")

    options = ConvertOptions(
        pretty=settings.pretty if compact is None else not compact,
        strict=settings.strict if strict is None else bool(strict),
        include_times=settings.include_times if include_times is None else bool(include_times),
        name=name or None,
    )
    if file.size is not None and file.size > settings.max_upload_bytes:
        raise _too_large()
    # one byte past the limit is enough to reject
    data = file.file.read(settings.max_upload_bytes + 1)
    kml_bytes = _run_conversion(data, options, file.filename)

    filename_base = file.filename.rsplit('.', 1)[0]
    out_name = f"{filename_base}.kml"

    return Response(
        content=kml_bytes,
        media_type=KML_MEDIA_TYPE,
        headers={"Content-Disposition": f"attachment; filename={out_name}"},
    )


@app.post("/api/convert/raw")
async def api_convert_raw(request: Request):
    """GPX bytes in the request body, KML bytes in the response body."""
    options = ConvertOptions(
        pretty=settings.pretty,
        strict=settings.strict,
        include_times=settings.include_times,
    )
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > settings.max_upload_bytes:
        raise _too_large()
    chunks = []
    received = 0
    async for chunk in request.stream():
        received += len(chunk)
        if received > settings.max_upload_bytes:
            raise _too_large()
        chunks.append(chunk)
    kml_bytes = await run_in_threadpool(_run_conversion, b"".join(chunks), options, "request body")
    return Response(content=kml_bytes, media_type=KML_MEDIA_TYPE)


def main():
    import uvicorn
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())


INDEX_HTML = """
<!doctype html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1" />
    <title>GPX → KML Converter</title>
    <style>
      body { font-family: system-ui, sans-serif; max-width: 36rem; margin: 3rem auto; padding: 0 1rem; }
      label { display: block; margin: .5rem 0; }
      #status { margin-top: 1rem; min-height: 1.5rem; }
      .error { color: #b00020; }
    </style>
  </head>
  <body>
    <h1>GPX → KML</h1>
    <form id="form">
      <label>GPX file <input type="file" id="file" name="file" accept=".gpx" required /></label>
      <label>Document name <input type="text" name="name" placeholder="from GPX metadata" /></label>
      <label><input type="checkbox" id="include_times" /> Attach timestamps as ExtendedData</label>
      <label><input type="checkbox" id="strict" /> Reject lines with fewer than two points</label>
      <button type="submit">Convert</button>
    </form>
    <div id="status"></div>
    <script>
      const form = document.getElementById('form');
      const statusEl = document.getElementById('status');
      form.addEventListener('submit', async (e) => {
        e.preventDefault();
        const fd = new FormData(form);
        fd.set('include_times', document.getElementById('include_times').checked ? '1' : '0');
        fd.set('strict', document.getElementById('strict').checked ? '1' : '0');
        statusEl.textContent = 'Converting…';
        statusEl.className = '';
        try {
          const res = await fetch('/api/convert', { method: 'POST', body: fd });
          if (!res.ok) {
            const err = await res.json().catch(() => ({ detail: res.statusText }));
            throw new Error(err.detail || res.statusText);
          }
          const blob = await res.blob();
          const src = document.getElementById('file').files[0].name;
          const a = document.createElement('a');
          a.href = URL.createObjectURL(blob);
          a.download = src.replace(/\\.gpx$/i, '') + '.kml';
          a.click();
          URL.revokeObjectURL(a.href);
          statusEl.textContent = 'Done.';
        } catch (err) {
          statusEl.textContent = err.message;
          statusEl.className = 'error';
        }
      });
    </script>
  </body>
</html>
"""


if __name__ == "__main__":
    main()
