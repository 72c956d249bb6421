import argparse
import logging
import os
from typing import List, Optional

import httpx
import uvicorn
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from fastapi.templating import Jinja2Templates

from config import DocType, RenderOptions, settings
from errors import MalformedFragment, VoiceAppNotFound
from graph_builder import GraphBuilder, RenderedFlowchart
from models import VoiceApp, VoiceAppKind
from normalizer import ModelNormalizer
from security import HostAllowList
from teams_client import TeamsClient

# Setup Logging
LOG_LEVEL = logging.INFO
if os.getenv("DEBUG", "").lower() in ("true", "1", "yes"):
    LOG_LEVEL = logging.DEBUG

logging.basicConfig(
    level=LOG_LEVEL, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Teams Call Flow Visualizer")

templates = Jinja2Templates(directory="templates")

allow_list = HostAllowList(settings.WHITELIST_FILE, settings.allowed_hosts)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def make_client(
    http_client: httpx.AsyncClient, token: str, api_url: Optional[str]
) -> TeamsClient:
    api_urls = [settings.VOICE_API_URL]
    if api_url:
        allow_list.validate_or_raise(api_url)
        api_urls.insert(0, api_url)
    return TeamsClient(
        token,
        api_urls,
        graph_url=settings.GRAPH_API_URL,
        client=http_client,
        timeout=settings.HTTP_TIMEOUT,
    )


async def render_flowchart(
    token: str, api_url: Optional[str], options: RenderOptions
) -> RenderedFlowchart:
    async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT) as http_client:
        client = make_client(http_client, token, api_url)
        builder = GraphBuilder(client, options)

        try:
            return await builder.build()
        except VoiceAppNotFound as e:
            logger.warning(f"Voice app not found: {e}")
            raise HTTPException(status_code=404, detail=str(e))
        except MalformedFragment as e:
            logger.error(f"Generated diagram is malformed: {e}")
            raise HTTPException(status_code=500, detail=str(e))
        except HTTPException as e:
            logger.warning(f"HTTP Exception: {e.detail}")
            raise e
        except Exception as e:
            logger.error(f"Error building flowchart: {e}", exc_info=True)
            raise HTTPException(status_code=500, detail=str(e))


def render_options(
    phone_number: Optional[str],
    voice_app_id: Optional[str],
    doc_type: Optional[DocType],
    show_nested_queues: Optional[bool],
    show_nested_phone_numbers: Optional[bool],
    nested_depth: Optional[int],
    show_admin_links: Optional[bool],
) -> RenderOptions:
    if not phone_number and not voice_app_id and not settings.PHONE_NUMBER:
        raise HTTPException(
            status_code=400, detail="Either phone_number or voice_app_id is required."
        )
    return RenderOptions.from_settings(
        settings,
        phone_number=phone_number,
        voice_app_id=voice_app_id,
        doc_type=doc_type,
        show_nested_queues=show_nested_queues,
        show_nested_phone_numbers=show_nested_phone_numbers,
        max_nested_depth=nested_depth,
        show_admin_links=show_admin_links,
    )


@app.get("/voiceapps", response_model=List[VoiceApp])
async def list_voice_apps(
    token: str,
    name: Optional[str] = Query(None, description="Case-insensitive name filter"),
    kind: Optional[VoiceAppKind] = Query(None),
    api_url: Optional[str] = Query(None, description="Voice app API URL"),
):
    async with httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT) as http_client:
        client = make_client(http_client, token, api_url)
        normalizer = ModelNormalizer(client)
        await normalizer.prefetch()
        apps = normalizer.voice_apps(name, kind)
        logger.info(f"Returning {len(apps)} voice apps.")
        return apps


@app.get("/flowchart", response_class=PlainTextResponse)
async def get_flowchart(
    token: str,
    phone_number: Optional[str] = Query(None, description="Number of the entry voice app"),
    voice_app_id: Optional[str] = Query(None, description="Id of the entry voice app"),
    doc_type: Optional[DocType] = Query(None),
    show_nested_queues: Optional[bool] = Query(None),
    show_nested_phone_numbers: Optional[bool] = Query(None),
    nested_depth: Optional[int] = Query(None, ge=0),
    show_admin_links: Optional[bool] = Query(None),
    api_url: Optional[str] = Query(None, description="Voice app API URL"),
):
    options = render_options(
        phone_number,
        voice_app_id,
        doc_type,
        show_nested_queues,
        show_nested_phone_numbers,
        nested_depth,
        show_admin_links,
    )
    logger.info(
        f"Received flowchart request for {options.phone_number or options.voice_app_id}"
    )
    flowchart = await render_flowchart(token, api_url, options)

    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(f"Final flowchart for {flowchart.voice_app.name}:\n{flowchart.text}")

    media_type = "text/markdown" if flowchart.doc_type == DocType.MARKDOWN else "text/plain"
    return PlainTextResponse(
        flowchart.text,
        media_type=media_type,
        headers={
            "Content-Disposition": f'attachment; filename="{flowchart.file_name}"'
        },
    )


@app.get("/preview")
async def preview_flowchart(
    request: Request,
    token: str,
    phone_number: Optional[str] = Query(None),
    voice_app_id: Optional[str] = Query(None),
    show_nested_queues: Optional[bool] = Query(None),
    show_nested_phone_numbers: Optional[bool] = Query(None),
    nested_depth: Optional[int] = Query(None, ge=0),
    show_admin_links: Optional[bool] = Query(None),
    api_url: Optional[str] = Query(None),
):
    options = render_options(
        phone_number,
        voice_app_id,
        DocType.MERMAID,
        show_nested_queues,
        show_nested_phone_numbers,
        nested_depth,
        show_admin_links,
    )
    flowchart = await render_flowchart(token, api_url, options)
    return templates.TemplateResponse(
        request,
        "flowchart.html",
        {"voice_app": flowchart.voice_app, "diagram": flowchart.text},
    )


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run the Teams Call Flow Visualizer API")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to")

    args = parser.parse_args()

    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
        logger.info("Debug logging enabled via command line argument.")

    uvicorn.run(
        app,
        host=args.host,
        port=args.port,
        proxy_headers=True,
        forwarded_allow_ips="*",
    )
