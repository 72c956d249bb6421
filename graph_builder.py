import logging
from typing import Dict, List, Tuple

from pydantic import BaseModel

from branch_resolver import BranchResolver, voice_app_link
from config import DocType, RenderOptions
from context import RenderContext, Scope
from diagram import ExpansionOrigin, Fragment, PlacedTarget
from errors import VoiceAppNotFound
from expansion import NestedExpander
from models import EdgeStyle, NodeShape, VoiceApp, VoiceAppKind
from normalizer import ModelNormalizer
from queue_builder import QueueEntry, QueueFlowBuilder
from renderer import render
from teams_client import TeamsClient
from utils import phone_digits, safe_file_name

logger = logging.getLogger(__name__)


class RenderedFlowchart(BaseModel):
    voice_app: VoiceApp
    doc_type: DocType
    text: str

    @property
    def file_name(self) -> str:
        return safe_file_name(self.voice_app.name) + self.doc_type.extension


class GraphBuilder:
    def __init__(self, client: TeamsClient, options: RenderOptions):
        self.client = client
        self.options = options
        self.normalizer = ModelNormalizer(client)

    async def build(self) -> RenderedFlowchart:
        voice_app, fragments = await self.build_fragments()
        text = render(fragments, self.options.doc_type)
        logger.info(
            f"Rendered {voice_app.kind_label} {voice_app.name} "
            f"({len(text.splitlines())} lines, {self.options.doc_type.value})"
        )
        return RenderedFlowchart(
            voice_app=voice_app, doc_type=self.options.doc_type, text=text
        )

    def select_voice_app(self) -> VoiceApp:
        if self.options.phone_number:
            return self.normalizer.find_voice_app_by_phone_number(self.options.phone_number)
        if self.options.voice_app_id:
            return self.normalizer.find_voice_app(self.options.voice_app_id)
        raise VoiceAppNotFound("Either a phone number or a voice app id is required")

    async def build_fragments(self) -> Tuple[VoiceApp, List[Fragment]]:
        # 1. Pre-fetch voice apps and resource accounts
        await self.normalizer.prefetch()
        voice_app = self.select_voice_app()
        logger.info(f"Building call flow for {voice_app.kind_label} {voice_app.name}")

        ctx = RenderContext(self.options)
        resolver = BranchResolver(ctx)
        queue_builder = QueueFlowBuilder(ctx, resolver)
        expander = NestedExpander(ctx, self.normalizer, queue_builder)

        # 2. Entry: phone numbers and the voice app itself
        fragments = []
        entry, voice_app_node = self._entry(ctx, voice_app)
        fragments.append(entry)

        # 3. The voice app's own flow
        placed: List[PlacedTarget]
        if voice_app.kind == VoiceAppKind.AUTO_ATTENDANT:
            config = await self.normalizer.load_auto_attendant(voice_app)
            body, placed = resolver.resolve_auto_attendant(config, voice_app_node)
        else:
            config = await self.normalizer.load_call_queue(voice_app)
            flow = queue_builder.build(
                config,
                QueueEntry(node_id=voice_app_node, origin=ExpansionOrigin.TOP_LEVEL),
            )
            body, placed = flow.fragment, flow.targets
        fragments.append(body)

        # 4. Nested voice apps, in placement order
        for target in placed:
            nested = await expander.expand(target, (voice_app.id,), depth=1)
            if not nested.is_empty:
                fragments.append(nested)

        # 5. Numbers of voice apps outside the diagram that route into it
        if self.options.show_nested_phone_numbers:
            numbers = self._top_level_numbers(ctx, voice_app)
            if not numbers.is_empty:
                fragments.append(numbers)

        self.client.log_stats()
        return voice_app, fragments

    def _entry(self, ctx: RenderContext, voice_app: VoiceApp) -> Tuple[Fragment, str]:
        fragment = Fragment()

        numbers = voice_app.phone_numbers
        selected = phone_digits(self.options.phone_number)
        numbers.sort(key=lambda number: phone_digits(number) != selected)

        start_ids = [
            fragment.node(
                f"start{ctx.ids.next(Scope.RESOURCE_ACCOUNT)}",
                ["Incoming Call at", number],
                NodeShape.CIRCLE,
            )
            for number in numbers
        ]

        link = voice_app_link(voice_app) if self.options.show_admin_links else None
        voice_app_node = fragment.node(
            f"voiceApp{ctx.ids.next(Scope.VOICE_APP)}",
            [voice_app.kind_label, voice_app.name],
            NodeShape.STADIUM,
            link=link,
        )
        ctx.place_voice_app(voice_app.id, voice_app_node)
        ctx.mark_expanded(voice_app.id, voice_app_node)
        ctx.numbered.add(voice_app.id)

        for i, start_id in enumerate(start_ids):
            style = EdgeStyle.SOLID if i == 0 else EdgeStyle.DOTTED
            fragment.edge(start_id, voice_app_node, style=style)

        return fragment, voice_app_node

    def _top_level_numbers(self, ctx: RenderContext, voice_app: VoiceApp) -> Fragment:
        fragment = Fragment()
        # (referrer id, number) -> number node
        number_nodes: Dict[Tuple[str, str], str] = {}
        placed_apps = list(ctx.voice_app_nodes.items())
        for app_id, node_id in placed_apps:
            if app_id == voice_app.id:
                continue
            for referrer in self.normalizer.voice_apps_routing_to(app_id):
                if referrer.id in ctx.voice_app_nodes:
                    continue
                for number in referrer.phone_numbers:
                    key = (referrer.id, number)
                    if key not in number_nodes:
                        number_nodes[key] = fragment.node(
                            f"topLevelNumber{ctx.ids.next(Scope.TOP_LEVEL_NUMBER)}",
                            ["Incoming Call at", number, f"via {referrer.name}"],
                            NodeShape.CIRCLE,
                        )
                    fragment.edge(number_nodes[key], node_id, style=EdgeStyle.LONG_DOTTED)
        return fragment
