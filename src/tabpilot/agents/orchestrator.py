"""
Session orchestrator.

Drives one automation session per tab through the loop

    perceive -> decide -> act -> (repeat)

until the reasoning model completes the task, asks the user for input, the
session is stopped, an unrecoverable error occurs, or the iteration cap is
reached. Two decision protocols are supported:

- ``"tools"`` (default): the reasoning model calls ``AUTOMATION_TOOLS`` and the
  :class:`ToolDispatcher` answers each call with a ``role=tool`` message.
- ``"json"``: each iteration captures and analyzes the page first, then the
  model returns one ``action_decision`` object with up to three chained actions.
"""

import asyncio
import functools
import logging
from typing import Any, Dict, List, Optional, Tuple

from tabpilot.agents.exceptions import (
    ActionError,
    ApiError,
    LocateParseError,
    SessionStateError,
    TabPilotError,
)
from tabpilot.agents.memory import ActionHistoryEntry
from tabpilot.agents.prompts import (
    CONTINUE_WITH_TOOLS,
    ITERATION_LIMIT_MESSAGE,
    JSON_SYSTEM_PROMPT,
    TOOLS_SYSTEM_PROMPT,
    action_results_message,
    cannot_capture_note,
    goal_message,
    observation_messages,
    user_reply_message,
)
from tabpilot.agents.session import Session, SessionStatus, SessionTable
from tabpilot.agents.tool_executor import ToolDispatcher, ToolResult
from tabpilot.agents.utils import session_extra
from tabpilot.coordination.chat_history import ChatEntry
from tabpilot.coordination.config import AutomationConfig
from tabpilot.coordination.status.events import StatusUpdate
from tabpilot.coordination.status.manager import StatusManager
from tabpilot.environment.action_executor import ActionExecutor
from tabpilot.environment.actions import ClickAction, describe_action
from tabpilot.environment.browser import BrowserEnvironment
from tabpilot.environment.overlay import OverlayChannel
from tabpilot.environment.perception import PerceptionAdapter, Snapshot
from tabpilot.environment.tabs import TabRegistry
from tabpilot.environment.utils import is_internal_url
from tabpilot.models.reasoning import ActionDecision, ReasoningClient
from tabpilot.models.vision import VisionClient

logger = logging.getLogger(__name__)

ANALYSIS_UNAVAILABLE = "(Page description unavailable: the vision model did not respond.)"
DEFAULT_STATUS = {"isRunning": False, "currentGoal": None, "actionCount": 0}


def _error_message(error: Exception) -> str:
    if isinstance(error, TabPilotError):
        return error.message
    return str(error) or type(error).__name__


def _log_extra(session: Session) -> Dict[str, Any]:
    return session_extra(session.tab_id, session.origin_tab_id)


class SessionOrchestrator:
    """
    Runs and supervises automation sessions, one per tab.

    Args:
        tabs: Tab registry; the orchestrator subscribes to its open/close events
        overlay: Overlay channel for drawing vision boxes
        perception: Screenshot capture and vision queries
        executor: Browser action execution
        reasoning: Reasoning model client
        status_manager: Receives every status update; a default one is created if omitted
        config: Loop limits, pacing and decision protocol
    """

    def __init__(
        self,
        tabs: TabRegistry,
        overlay: OverlayChannel,
        perception: PerceptionAdapter,
        executor: ActionExecutor,
        reasoning: ReasoningClient,
        status_manager: Optional[StatusManager] = None,
        config: Optional[AutomationConfig] = None,
    ):
        self.tabs = tabs
        self.overlay = overlay
        self.perception = perception
        self.executor = executor
        self.reasoning = reasoning
        self.status_manager = status_manager or StatusManager()
        self.config = config or AutomationConfig()
        self.sessions = SessionTable()
        self.dispatcher = ToolDispatcher(
            perception,
            executor,
            overlay,
            tabs,
            stream_vision=self.config.stream_vision,
        )

        tabs.on_tab_opened(self.handle_tab_opened)
        tabs.on_tab_closed(self.handle_tab_closed)

    @classmethod
    def from_environment(
        cls,
        env: BrowserEnvironment,
        vision: VisionClient,
        reasoning: ReasoningClient,
        status_manager: Optional[StatusManager] = None,
        config: Optional[AutomationConfig] = None,
    ) -> "SessionOrchestrator":
        """Wire an orchestrator to a launched browser."""
        config = config or AutomationConfig()
        perception = PerceptionAdapter(env.driver, env.tabs, env.overlay, vision)
        executor = ActionExecutor(
            env.driver,
            env.tabs,
            env.overlay,
            navigation_delay=config.navigation_delay,
        )
        return cls(env.tabs, env.overlay, perception, executor, reasoning, status_manager, config)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def run(self, tab_id: int, goal: str) -> Session:
        """
        Run a session on ``tab_id`` until it reaches a terminal state.

        If the tab's session is waiting for the user, ``goal`` is treated as
        the user's reply and the same conversation continues. Otherwise a
        fresh session is started.

        Raises:
            SessionStateError: If a session is already running on the tab
        """
        session = self.sessions.get_or_create(tab_id)
        if session.running:
            raise SessionStateError(
                "Automation is already running on this tab",
                tab_id=tab_id,
                state=session.status.value,
            )

        self.status_manager.chat_history.add(session.origin_tab_id, ChatEntry(type="user", content=goal))

        if session.status == SessionStatus.WAITING_FOR_USER and len(session.memory):
            logger.info("Resuming session with user reply", extra=_log_extra(session))
            session.memory.add(role="user", content=user_reply_message(goal))
            session.iteration = 0
        else:
            logger.info(f"Starting session: {goal}", extra=_log_extra(session))
            session.reset(goal)
            system_prompt = TOOLS_SYSTEM_PROMPT if self.config.protocol == "tools" else JSON_SYSTEM_PROMPT
            session.memory.add(role="system", content=system_prompt)
            session.memory.add(role="system", content=goal_message(goal))

        session.running = True
        session.status = SessionStatus.RUNNING
        try:
            await self._run_loop(session)
        finally:
            session.running = False
            if session.status == SessionStatus.RUNNING:
                session.status = SessionStatus.STOPPED
        return session

    def _lookup(self, tab_id: int) -> Optional[Session]:
        """The session on ``tab_id``, or the one handed off from it to a popup."""
        session = self.sessions.get(tab_id)
        if session is None:
            session = self.sessions.find_by_origin(tab_id)
        return session

    async def stop(self, tab_id: int) -> bool:
        """
        Stop the session on ``tab_id``. Returns False if nothing was running.

        A session that moved to a popup can be stopped through its origin tab.
        """
        session = self._lookup(tab_id)
        if session is None or not session.running:
            return False
        session.running = False
        await self._finish(session, SessionStatus.STOPPED, "Stopped by user")
        return True

    def status(self, tab_id: int) -> Dict[str, Any]:
        session = self._lookup(tab_id)
        if session is None:
            return dict(DEFAULT_STATUS)
        return session.to_status()

    def chat_history(self, tab_id: int) -> List[Dict[str, str]]:
        return [entry.to_dict() for entry in self.status_manager.chat_history.get(tab_id)]

    async def handle_tab_opened(self, opener_tab_id: int, new_tab_id: int) -> None:
        """Move a running session from ``opener_tab_id`` to the tab it just opened."""
        session = self.sessions.get(opener_tab_id)
        if session is None or not session.running:
            return

        self.sessions.relocate(opener_tab_id, new_tab_id)
        session.cache.invalidate(clear_analysis=True)
        logger.info(
            f"Session handed off from tab {opener_tab_id} to tab {new_tab_id}",
            extra=_log_extra(session),
        )

    async def handle_tab_closed(self, tab_id: int) -> None:
        session = self.sessions.remove(tab_id)
        if session is not None:
            session.running = False
            logger.info("Tab closed, session discarded", extra=_log_extra(session))

        # History is kept while a handed-off session still reports to this origin.
        if self.sessions.find_by_origin(tab_id) is None:
            self.status_manager.chat_history.clear(tab_id)

    async def shutdown(self) -> None:
        for session in self.sessions:
            session.running = False
        await self.reasoning.cleanup()
        await self.perception.vision.cleanup()
        await self.status_manager.shutdown()

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    async def _publish(self, session: Session, status: str, message: str, **fields) -> None:
        update = StatusUpdate(
            session.tab_id,
            status,
            session.iteration,
            message,
            origin_tab_id=session.origin_tab_id,
            **fields,
        )
        await self.status_manager.publish(update)

    async def _finish(self, session: Session, status: SessionStatus, message: str, **fields) -> bool:
        """Move the session to a terminal state. Only the first call per run publishes."""
        if session.status != SessionStatus.RUNNING:
            return False
        session.status = status
        session.running = False
        if status == SessionStatus.COMPLETED:
            session.result = message
        logger.info(f"Session {status.value}: {message}", extra=_log_extra(session))
        await self._publish(session, status.value, message, **fields)
        return True

    # ------------------------------------------------------------------
    # Loop
    # ------------------------------------------------------------------

    async def _run_loop(self, session: Session) -> None:
        config = self.config
        retry_count = 0

        while session.running and session.iteration < config.max_iterations:
            session.iteration += 1
            logger.debug(f"Starting iteration {session.iteration}", extra=_log_extra(session))

            try:
                if config.protocol == "tools":
                    await self._tools_iteration(session)
                else:
                    await self._json_iteration(session)
                retry_count = 0
            except asyncio.CancelledError:
                raise
            except Exception as e:
                retry_count += 1
                message = _error_message(e)
                retriable = isinstance(e, ApiError) and e.is_retriable

                if not retriable or retry_count >= config.max_retries:
                    logger.error(
                        f"Session failed: {message}",
                        extra=_log_extra(session),
                        exc_info=not isinstance(e, TabPilotError),
                    )
                    await self._finish(session, SessionStatus.ERROR, message)
                    break

                logger.warning(
                    f"Retrying ({retry_count}/{config.max_retries}): {message}",
                    extra=_log_extra(session),
                )
                session.mark_last_failed()
                await asyncio.sleep(config.retry_delay)
                continue

            if session.running:
                await asyncio.sleep(config.iteration_delay)

        if session.running and session.iteration >= config.max_iterations:
            await self._finish(session, SessionStatus.STOPPED, ITERATION_LIMIT_MESSAGE)

    async def _terminate(self, session: Session, action: Dict[str, Any], reasoning: Optional[str] = None) -> None:
        if action["action"] == "done":
            await self._finish(
                session,
                SessionStatus.COMPLETED,
                action.get("result") or "Task complete.",
                reasoning=reasoning,
            )
        else:
            await self._finish(
                session,
                SessionStatus.WAITING_FOR_USER,
                action.get("prompt") or "I need your input to continue.",
            )

    # ------------------------------------------------------------------
    # Tool-calling protocol
    # ------------------------------------------------------------------

    async def _tools_iteration(self, session: Session) -> None:
        url = self.tabs.get_url(session.tab_id)
        new_messages = [f"Current URL: {url or 'unknown'}"]
        if is_internal_url(url):
            new_messages.append(cannot_capture_note(url))

        await self._publish(session, "analyzing", "Determining next action...")
        request = session.memory.get_messages() + [{"role": "user", "content": m} for m in new_messages]
        response = await self.reasoning.call_tools(request)

        for message in new_messages:
            session.memory.add(role="user", content=message)
        session.memory.add(
            role="assistant",
            content=response.content,
            tool_calls=[tc.to_message_dict() for tc in response.tool_calls] or None,
        )

        if not response.has_tool_calls():
            logger.info("Reply without tool calls, nudging", extra=_log_extra(session))
            session.memory.add(role="user", content=CONTINUE_WITH_TOOLS)
            return

        on_status = functools.partial(self._publish, session)
        calls = list(response.tool_calls)
        for index, call in enumerate(calls):
            if not session.running:
                self._answer_skipped(session, calls[index:])
                break

            result: ToolResult = await self.dispatcher.dispatch_call(
                session.tab_id,
                call,
                session.cache,
                on_status=on_status,
                should_continue=lambda: session.running,
            )
            session.memory.add(role="tool", content=result.content, tool_call_id=call.id)
            if result.action is not None:
                session.record(
                    ActionHistoryEntry(action=result.action, reasoning=response.content, success=result.success)
                )

            if result.terminal:
                self._answer_skipped(session, calls[index + 1:])
                await self._terminate(session, result.action, reasoning=response.content)
                break

    def _answer_skipped(self, session: Session, calls) -> None:
        # Every tool call needs an answer before the conversation can continue.
        for call in calls:
            session.memory.add(role="tool", content="Not executed: the session ended.", tool_call_id=call.id)

    # ------------------------------------------------------------------
    # Structured-JSON protocol
    # ------------------------------------------------------------------

    async def _json_iteration(self, session: Session) -> None:
        url = self.tabs.get_url(session.tab_id)
        snapshot, page_state, answer = await self._observe(session, url)

        new_messages = observation_messages(
            url,
            page_state,
            answer,
            history=session.history,
            history_window=self.config.history_window,
        )
        await self._publish(session, "analyzing", "Determining next action...")
        request = session.memory.get_messages() + [{"role": "user", "content": m} for m in new_messages]
        decision, content = await self.reasoning.decide(request, max_actions=self.config.max_chained_actions)

        for message in new_messages:
            session.memory.add(role="user", content=message)
        session.memory.add(role="assistant", content=content)

        session.pending_question = decision.question or None
        session.vision_focus = decision.vision_focus or None

        await self.overlay.clear_boxes(session.tab_id)
        results = await self._execute_decision(session, decision, have_snapshot=snapshot is not None)
        if results:
            session.memory.add(role="user", content=action_results_message(results))

    async def _observe(
        self, session: Session, url: str
    ) -> Tuple[Optional[Snapshot], str, Optional[str]]:
        """
        Capture and describe the page.

        Returns the snapshot (None when the page cannot be captured), the page
        description and the answer to the pending question, if any. Vision
        failures degrade to a placeholder description.
        """
        tab_id = session.tab_id
        snapshot = None
        if not is_internal_url(url):
            try:
                snapshot = await self.perception.capture(tab_id, session.cache) or None
            except TabPilotError as e:
                logger.warning(f"Screenshot capture failed: {e.message}", extra=_log_extra(session))

        if snapshot is None:
            session.cache.invalidate()
            await self._publish(session, "reasoning", "No page loaded - determining where to navigate...")
            return None, cannot_capture_note(url), None

        await self._publish(session, "analyzing", "Analyzing current page...")
        await self.overlay.clear_boxes(tab_id)

        async def draw(boxes):
            await self.overlay.add_boxes(tab_id, boxes)

        analysis_call = self._degrade(
            self.perception.analyze(
                snapshot.screenshot,
                session.vision_focus,
                on_boxes=draw,
                stream=self.config.stream_vision,
            ),
            "Vision analysis",
            session,
        )
        question = session.pending_question
        if question:
            ask_call = self._degrade(self.perception.ask(snapshot.screenshot, question), "Question answering", session)
            analysis, answer = await asyncio.gather(analysis_call, ask_call)
        else:
            analysis, answer = await analysis_call, None
        session.pending_question = None

        if analysis is None:
            return snapshot, ANALYSIS_UNAVAILABLE, answer

        session.cache.last_analysis = analysis.page_state
        session.vision_focus = None
        await self._publish(
            session,
            "vision",
            "Page analyzed",
            screenshot=snapshot.screenshot,
            page_description=analysis.page_state,
            boxes=analysis.boxes,
        )
        return snapshot, analysis.page_state, answer

    async def _degrade(self, call, what: str, session: Session):
        try:
            return await call
        except (TabPilotError, ValueError) as e:
            logger.warning(f"{what} failed: {_error_message(e)}", extra=_log_extra(session))
            return None

    async def _execute_decision(
        self, session: Session, decision: ActionDecision, have_snapshot: bool
    ) -> List[str]:
        """Run the decision's actions in order. Returns the result line of each attempted action."""
        results: List[str] = []
        actions = decision.actions

        for index, action in enumerate(actions):
            if not session.running:
                break

            entry = ActionHistoryEntry(action=action.to_dict(), reasoning=decision.reasoning)

            if action.terminal:
                session.record(entry)
                await self._terminate(session, action.to_dict(), reasoning=decision.reasoning)
                break

            if action.needs_snapshot and not have_snapshot:
                entry.success = False
                session.record(entry)
                results.append(
                    f"Error: Cannot {action.action} before a page is loaded. Navigate to a website first."
                )
                break

            try:
                if isinstance(action, ClickAction):
                    action = await self._resolve_click(session, action)
                    entry.action = action.to_dict()

                await self._publish(
                    session,
                    "executing",
                    describe_action(action),
                    action=action.to_dict(),
                    reasoning=decision.reasoning if index == 0 else None,
                    confidence=decision.confidence,
                )
                outcome = await self.executor.execute(
                    session.tab_id, action, session.cache, should_continue=lambda: session.running
                )
            except ActionError as e:
                entry.success = False
                session.record(entry)
                results.append(e.as_result())
                break
            except TabPilotError:
                entry.success = False
                session.record(entry)
                raise

            entry.success = outcome.success
            session.record(entry)
            results.append(outcome.message)
            if not outcome.success:
                break

            if index < len(actions) - 1:
                await asyncio.sleep(self.config.action_delay)

        return results

    async def _resolve_click(self, session: Session, action: ClickAction) -> ClickAction:
        """Locate the click target on the cached screenshot and fill in pixel coordinates."""
        if action.x is not None and action.y is not None:
            return action
        if not action.target:
            raise ActionError("Error: click requires a target description", action="click")

        await self._publish(session, "analyzing", f"Finding element: {action.target}")
        viewport = session.cache.viewport
        screenshot = session.cache.screenshot
        try:
            x, y = await self.perception.locate(session.cache, action.target)
        except (LocateParseError, ValueError) as e:
            raise ActionError(
                f"Error: Could not find element: {action.target}", action="click"
            ) from e
        await self._publish(
            session,
            "pointing",
            action.target,
            screenshot=screenshot,
            point_x=x / viewport.width * 100,
            point_y=y / viewport.height * 100,
        )
        return action.model_copy(update={"x": x, "y": y})
