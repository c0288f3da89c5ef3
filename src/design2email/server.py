"""FastAPI web service for design-to-email conversion.

Endpoints::

    GET  /health        Health check.
    GET  /styles        List page presets and image modes.
    POST /candidates    Send a selection, receive the button candidates to confirm.
    POST /convert       Upload a .json selection and receive HTML back.
    POST /convert/text  Send the selection JSON as a form field, receive HTML.

In ``download`` image mode the conversion endpoints answer with a zip
holding ``index.html`` and the exported images.

Run::

    uvicorn design2email.server:app --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import io
import zipfile
from urllib.parse import quote

from fastapi import FastAPI, File, Form, HTTPException, UploadFile
from fastapi.responses import HTMLResponse, Response

from design2email import __version__
from design2email.converter import Converter
from design2email.host import StaticConfirmer
from design2email.images import ImageMode
from design2email.parser import DesignTreeError
from design2email.renderer import RenderResult
from design2email.style_manager import StyleManager

app = FastAPI(
    title="design2email",
    description="Design selection to table-based email HTML conversion service",
    version=__version__,
)

ZIP_MEDIA_TYPE = "application/zip"


def _content_disposition(filename: str) -> str:
    """Build Content-Disposition header, RFC 5987 for non-ASCII names."""
    try:
        filename.encode("ascii")
        return f'attachment; filename="{filename}"'
    except UnicodeEncodeError:
        encoded = quote(filename)
        return f"attachment; filename*=UTF-8''{encoded}"


def _split_ids(raw: str) -> list[str]:
    return [part.strip() for part in raw.split(",") if part.strip()]


def _make_converter(style: str, mode: str, cta_ids: str, document: bool) -> Converter:
    try:
        return Converter(
            style_preset=style,
            image_mode=mode,
            confirmer=StaticConfirmer(_split_ids(cta_ids)),
            full_document=document,
        )
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc


def _package_zip(result: RenderResult, asset_dir: str) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
        zf.writestr("index.html", result.html)
        for asset in result.assets:
            zf.writestr(f"{asset_dir}/{asset.name}", asset.data)
    return buf.getvalue()


async def _respond(converter: Converter, json_text: str, basename: str) -> Response:
    try:
        result = await converter.aconvert_text(json_text, title=basename)
    except DesignTreeError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    if converter.image_mode is ImageMode.DOWNLOAD:
        return Response(
            content=_package_zip(result, converter.asset_dir),
            media_type=ZIP_MEDIA_TYPE,
            headers={"Content-Disposition": _content_disposition(f"{basename}.zip")},
        )
    return HTMLResponse(content=result.html)


@app.get("/health")
async def health() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "ok", "version": __version__}


@app.get("/styles")
async def list_styles() -> dict[str, list[str]]:
    """List available page presets and image modes."""
    return {"presets": StyleManager.PRESETS, "image_modes": Converter.IMAGE_MODES}


@app.post("/candidates")
async def list_candidates(design: str = Form(...)) -> dict[str, list[dict[str, str]]]:
    """Return the button-shaped containers the user should confirm.

    - **design**: selection JSON
    """
    try:
        nodes = Converter().list_candidates(design)
    except DesignTreeError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return {"candidates": [{"id": n.id, "name": n.name} for n in nodes]}


@app.post("/convert")
async def convert_file(
    file: UploadFile = File(...),
    style: str = Form("default"),
    mode: str = Form("placeholder"),
    cta_ids: str = Form(""),
    document: bool = Form(False),
    encoding: str = Form("utf-8"),
) -> Response:
    """Upload a selection JSON file and receive HTML back.

    - **file**: selection file (.json)
    - **style**: page preset (default, wide, narrow)
    - **mode**: image mode (placeholder, base64, download)
    - **cta_ids**: comma-separated ids of confirmed buttons
    - **document**: wrap the output in a full HTML document
    """
    raw = await file.read()
    try:
        json_text = raw.decode(encoding)
    except (UnicodeDecodeError, LookupError) as exc:
        raise HTTPException(status_code=422, detail=f"Cannot decode upload: {exc}") from exc

    converter = _make_converter(style, mode, cta_ids, document)
    basename = (file.filename or "selection.json").rsplit(".", 1)[0]
    return await _respond(converter, json_text, basename)


@app.post("/convert/text")
async def convert_text(
    design: str = Form(...),
    style: str = Form("default"),
    mode: str = Form("placeholder"),
    cta_ids: str = Form(""),
    document: bool = Form(False),
) -> Response:
    """Send the selection JSON and receive HTML.

    - **design**: selection JSON
    - **style**: page preset
    - **mode**: image mode
    - **cta_ids**: comma-separated ids of confirmed buttons
    """
    converter = _make_converter(style, mode, cta_ids, document)
    return await _respond(converter, design, "email")
