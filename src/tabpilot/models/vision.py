"""
Vision model client.

The vision model answers three kinds of query about a screenshot, selected by
a ``<hint>...</hint>`` system directive:

* ``BOX``: segment the page and report elements as ``point_box`` tags
* ``POINT``: report a single ``x,y`` point for a described element
* no hint: a brief free-text answer to a question

All coordinates in its output are normalized to 0-1000.
"""

import inspect
import logging
from typing import Awaitable, Callable, List, Optional, Tuple, Union

from pydantic import BaseModel, Field

from tabpilot.agents.exceptions import LocateParseError
from tabpilot.environment.box_parser import StreamingBoxParser, parse_boxes, parse_point
from tabpilot.environment.geometry import BoundingBox
from tabpilot.models.adapters import chat_message, image_part, text_part
from tabpilot.models.models import ModelConfig

logger = logging.getLogger(__name__)

BoxCallback = Callable[[List[BoundingBox]], Union[None, Awaitable[None]]]

ANALYZE_PROMPT = "This is a browser page. Segment elements."
ANALYZE_FOCUSED_PROMPT = "This is a browser page. Segment elements, focused on: {focus}"
POINT_PROMPT = "Point to the {description}"
ASK_PROMPT = (
    "Answer this question based only on what you see in the image. "
    "Be brief (1-2 sentences).\n\nQuestion: {question}"
)

ANALYZE_MAX_TOKENS = 2048
ANALYZE_FREQUENCY_PENALTY = 0.6
ASK_MAX_TOKENS = 256


class VisionAnalysis(BaseModel):
    """Result of a ``BOX`` query: the raw description and the boxes found in it."""

    page_state: str
    boxes: List[BoundingBox] = Field(default_factory=list)


def hint(*tokens: str) -> str:
    return f"<hint>{' '.join(tokens)}</hint>"


class VisionClient:
    """
    Async client for the vision model.

    Args:
        config: Vision model configuration
        adapter: Transport adapter; built from ``config`` when omitted
        stream: Default response mode for :meth:`analyze`
        think: Add the ``THINK`` hint token so the model reasons before answering
    """

    def __init__(self, config: ModelConfig, adapter=None, stream: bool = True, think: bool = False):
        self.config = config
        self.adapter = adapter or config.create_adapter()
        self.stream = stream
        self.think = think

    def _hint(self, token: str) -> str:
        return hint(token, "THINK") if self.think else hint(token)

    async def analyze(
        self,
        screenshot: str,
        focus_hint: Optional[str] = None,
        on_boxes: Optional[BoxCallback] = None,
        stream: Optional[bool] = None,
    ) -> VisionAnalysis:
        """
        Describe the page and segment its elements.

        When streaming, ``on_boxes`` is called with each batch of newly
        completed boxes as the response arrives; otherwise it is called once
        with all boxes.
        """
        prompt = ANALYZE_FOCUSED_PROMPT.format(focus=focus_hint) if focus_hint else ANALYZE_PROMPT
        messages = [
            chat_message(self._hint("BOX"), "system"),
            chat_message([image_part(screenshot), text_part(prompt)]),
        ]
        params = {
            "temperature": self.config.temperature,
            "max_completion_tokens": self.config.max_tokens or ANALYZE_MAX_TOKENS,
            "frequency_penalty": ANALYZE_FREQUENCY_PENALTY,
        }

        use_stream = self.stream if stream is None else stream
        if use_stream:
            parser = StreamingBoxParser()
            async for delta in self.adapter.astream(messages, **params):
                new_boxes = parser.feed(delta)
                if new_boxes and on_boxes is not None:
                    await _call(on_boxes, new_boxes)
            text = parser.text
            boxes = parse_boxes(text)
        else:
            response = await self.adapter.arun(messages, **params)
            text = response.content or ""
            boxes = parse_boxes(text)
            if boxes and on_boxes is not None:
                await _call(on_boxes, boxes)

        logger.info(f"Vision analysis found {len(boxes)} boxes")
        return VisionAnalysis(page_state=text, boxes=boxes)

    async def point(self, screenshot: str, description: str) -> Tuple[int, int]:
        """
        Locate one element and return its normalized ``(x, y)``.

        Raises:
            LocateParseError: If the response contains no ``x,y`` pair
        """
        messages = [
            chat_message(self._hint("POINT"), "system"),
            chat_message([image_part(screenshot), text_part(POINT_PROMPT.format(description=description))]),
        ]
        response = await self.adapter.arun(messages, temperature=self.config.temperature)
        content = response.content or ""
        logger.debug(f"Vision point response: {content}")

        point = parse_point(content)
        if point is None:
            raise LocateParseError(content, description=description)
        return point

    async def ask(self, screenshot: str, question: str) -> str:
        """Short free-text answer about the screenshot."""
        messages = [
            chat_message([image_part(screenshot), text_part(ASK_PROMPT.format(question=question))]),
        ]
        response = await self.adapter.arun(
            messages,
            temperature=self.config.temperature,
            max_completion_tokens=ASK_MAX_TOKENS,
        )
        return (response.content or "").strip()

    async def cleanup(self):
        await self.adapter.cleanup()


async def _call(callback: Callable, *args) -> None:
    result = callback(*args)
    if inspect.isawaitable(result):
        await result
