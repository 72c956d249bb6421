import logging
from typing import Tuple

from fastapi import HTTPException

from context import RenderContext, Scope
from diagram import Fragment, PlacedTarget
from errors import CycleDetected, VoiceAppNotFound
from models import ApplicationEndpointTarget, EdgeStyle, NodeShape, VoiceApp, VoiceAppKind
from normalizer import ModelNormalizer
from queue_builder import QueueEntry, QueueFlowBuilder

logger = logging.getLogger(__name__)

ALREADY_SHOWN = "Already Shown"


class NestedExpander:
    """Draws the flows of call queues reached from another voice app.

    Expansion is depth first along the placed targets, never re-enters a
    voice app on the current path and stops at ``max_nested_depth``.
    """

    def __init__(
        self,
        ctx: RenderContext,
        normalizer: ModelNormalizer,
        queue_builder: QueueFlowBuilder,
    ):
        self.ctx = ctx
        self.normalizer = normalizer
        self.queue_builder = queue_builder

    def phone_numbers(self, placed: PlacedTarget, voice_app: VoiceApp) -> Fragment:
        """Extra start nodes for numbers that call the nested voice app directly."""
        fragment = Fragment()
        if not self.ctx.options.show_nested_phone_numbers:
            return fragment
        if voice_app.id in self.ctx.numbered:
            return fragment
        self.ctx.numbered.add(voice_app.id)

        for number in voice_app.phone_numbers:
            start_id = fragment.node(
                f"start{self.ctx.ids.next(Scope.RESOURCE_ACCOUNT)}",
                ["Incoming Call at", number],
                NodeShape.CIRCLE,
            )
            fragment.edge(start_id, placed.node_id, style=EdgeStyle.DOTTED)
        return fragment

    def _enter(self, voice_app: VoiceApp, path: Tuple[str, ...]):
        if voice_app.id in path:
            raise CycleDetected(voice_app.id, path)

    async def expand(
        self, placed: PlacedTarget, path: Tuple[str, ...], depth: int = 1
    ) -> Fragment:
        fragment = Fragment()
        target = placed.target
        if not isinstance(target, ApplicationEndpointTarget):
            return fragment

        voice_app = target.voice_app
        fragment.extend(self.phone_numbers(placed, voice_app))

        try:
            self._enter(voice_app, path)
        except CycleDetected as e:
            logger.info(f"{e}; linking to the node already shown.")
            fragment.edge(
                placed.node_id,
                self.ctx.reference_node(voice_app.id),
                ALREADY_SHOWN,
                EdgeStyle.DOTTED,
            )
            return fragment

        options = self.ctx.options
        if voice_app.kind != VoiceAppKind.CALL_QUEUE or not options.show_nested_queues:
            return fragment

        if depth > options.max_nested_depth:
            logger.debug(
                f"Not expanding {voice_app.name}: depth {depth} exceeds "
                f"{options.max_nested_depth}"
            )
            return fragment

        if voice_app.id in self.ctx.expanded:
            fragment.edge(
                placed.node_id,
                self.ctx.expanded[voice_app.id],
                ALREADY_SHOWN,
                EdgeStyle.DOTTED,
            )
            return fragment

        try:
            config = await self.normalizer.load_call_queue(voice_app)
        except (VoiceAppNotFound, HTTPException) as e:
            logger.warning(f"Could not load nested call queue {voice_app.name}: {e}")
            return fragment

        logger.debug(
            f"Expanding nested call queue {voice_app.name} from {placed.node_id} "
            f"at depth {depth}"
        )
        self.ctx.mark_expanded(voice_app.id, placed.node_id)
        fragment.comment(
            f"Nested call queue {voice_app.name} (reached via {placed.origin.value})"
        )

        flow = self.queue_builder.build(
            config, QueueEntry(node_id=placed.node_id, origin=placed.origin)
        )
        fragment.extend(flow.fragment)

        for child in flow.targets:
            fragment.extend(await self.expand(child, path + (voice_app.id,), depth + 1))

        return fragment
