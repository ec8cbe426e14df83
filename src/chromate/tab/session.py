"""Tab session: one CDP connection driving one page target.

A ``Tab`` opens a fresh target, wires protocol listeners, navigates, and then
waits for the page to signal completion through ``console.debug`` messages of
the form ``{event, data}``. The completion future settles exactly once, whichever
of load, ``done``, an error log entry, a navigation failure, a timeout or a
handler override gets there first.

Example:
    >>> tab = Tab(timeout=10)
    >>> tab.on('progress', lambda data, tab: print(data))
    >>> await tab.open('file:///path/to/test.html')
    >>> print(tab.result)
    >>> await tab.close()
"""

import asyncio
import base64
import inspect
import logging
import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

from cdp_use import CDPClient

from chromate.exceptions import NavigationError, PageError, TabSessionError, TabTimeoutError
from chromate.tab.devtools import DevTools, Target
from chromate.tab.evaluate import build_call_expression, normalize_options, split_options, unwrap_result
from chromate.tab.preview import decode_remote_object, message_to_string
from chromate.tab.views import EventHandler, EventHandlers, EventKind, EventRecord, TabSettings, TabState

logger = logging.getLogger(__name__)
console_logger = logging.getLogger('chromate.console')

AbortHandler = Callable[[int], Any]

DEFAULT_ABORT_CODE = 1

# Installed on every new document; pages call chromate.emit('name', data)
PAGE_HELPER = """
(function () {
  if (window.chromate) return;
  window.chromate = {
    emit: function (event, data) {
      console.debug(JSON.stringify({event: event, data: data}));
    },
    done: function (data) {
      this.emit('done', data);
    },
    abort: function (code) {
      this.emit('abort', {code: code});
    }
  };
})();
"""

# Protocol events re-emitted to callers as 'event' and under their method name
DEFAULT_RAW_EVENTS: tuple[str, ...] = (
    'Runtime.executionContextCreated',
    'Network.requestWillBeSent',
    'Network.responseReceived',
    'Network.loadingFinished',
    'Network.loadingFailed',
    'Page.frameNavigated',
    'Page.domContentEventFired',
    'Page.loadEventFired',
    'Log.entryAdded',
    'Runtime.consoleAPICalled',
    'Runtime.exceptionThrown',
)


def default_abort_handler(code: int) -> None:
    """Terminate the host process immediately. Not recoverable."""
    logger.critical(f'[Tab] Page requested abort, exiting with code {code}')
    logging.shutdown()
    os._exit(code)


def _wants_tab(handler: EventHandler) -> bool:
    """True if ``handler`` takes a second positional argument for the tab."""
    try:
        signature = inspect.signature(handler)
    except (TypeError, ValueError):
        return True
    positional = 0
    for param in signature.parameters.values():
        if param.kind is param.VAR_POSITIONAL:
            return True
        if param.kind in (param.POSITIONAL_ONLY, param.POSITIONAL_OR_KEYWORD):
            positional += 1
    return positional >= 2


def _is_protocol_event(name: str) -> bool:
    domain, _, event = name.partition('.')
    return bool(domain) and bool(event) and domain[:1].isupper() and domain != 'console'


class Tab:
    """One browser tab driven over its own CDP connection.

    Handlers are registered with ``on``/``once`` and called as
    ``handler(payload, tab)`` (or ``handler(payload)`` if they take one
    argument). Page messages deliver their ``data`` field as the payload, and
    the ``data`` of ``done`` becomes ``tab.result``. Coroutine handlers are
    scheduled as tasks; if one raises, the tab's completion is rejected with
    that error.

    Reserved events:
        ready: connection is up, before navigation; payload is the target info.
        load: ``Page.loadEventFired`` params.
        done: page finished; settles the tab when ``wait_for_done`` is set.
        abort: unclaimed, calls ``abort_handler`` (default: exit the process).
        exception: ``Runtime.exceptionThrown`` details.
        data: ``console.debug`` messages without an ``event`` field.
        console / console.<type>: mirrored non-debug console calls.
        event: every forwarded protocol message as ``{method, params}``.
    Any dotted name (``'Network.requestWillBeSent'``) subscribes to that
    protocol event directly.
    """

    def __init__(
        self,
        settings: TabSettings | None = None,
        *,
        devtools: DevTools | None = None,
        abort_handler: AbortHandler | None = None,
        events: dict[str, EventHandler] | None = None,
        **overrides: Any,
    ):
        self.settings = (settings or TabSettings()).merge(**overrides)
        self.devtools = devtools or DevTools(port=self.settings.port)
        self.abort_handler = abort_handler or default_abort_handler
        self.handlers = EventHandlers()
        for name, handler in (events or {}).items():
            self.handlers.add(name, handler)

        self.state = TabState.CONSTRUCTED
        self.target: Target | None = None
        self.client: CDPClient | None = None
        self.url: str | None = None
        self.frame_id: str | None = None
        self.result: Any = None
        self.error: BaseException | None = None

        self._completion: asyncio.Future | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._settled = False
        self._completing = False
        self._closing = False
        self._protocol_listeners: dict[str, list[Callable[[dict[str, Any]], None]]] = {}
        self._tasks: set[asyncio.Task] = set()

    def __repr__(self) -> str:
        return f'<Tab {self.id or "-"} {self.state.value} {self.url or ""}>'

    @property
    def id(self) -> str | None:
        return self.target.get('id') if self.target else None

    @property
    def settled(self) -> bool:
        return self._settled

    @property
    def closed(self) -> bool:
        return self.state is TabState.CLOSED

    # ------------------------------------------------------------------
    # Handler registration
    # ------------------------------------------------------------------

    def on(self, name: 'str | EventKind', handler: EventHandler) -> 'Tab':
        """Register ``handler`` for ``name``. Returns the tab for chaining."""
        self.handlers.add(name, handler)
        self._subscribe_late(name)
        return self

    def once(self, name: 'str | EventKind', handler: EventHandler) -> 'Tab':
        """Register ``handler`` for the next ``name`` event only."""
        self.handlers.add(name, handler, once=True)
        self._subscribe_late(name)
        return self

    def off(self, name: 'str | EventKind', handler: EventHandler | None = None) -> 'Tab':
        """Remove one handler, or every handler for ``name``."""
        self.handlers.remove(name, handler)
        return self

    def _subscribe_late(self, name: 'str | EventKind') -> None:
        # Protocol subscriptions made after connecting need their listener now
        key = name.value if isinstance(name, EventKind) else name
        if self.client is not None and not self.closed and _is_protocol_event(key):
            if key not in self._protocol_listeners:
                self._listen(key, lambda params, _method=key: self._forward_raw(_method, params))

    # ------------------------------------------------------------------
    # Life cycle
    # ------------------------------------------------------------------

    async def open(self, url: str) -> 'Tab':
        """Open a new target, navigate to ``url`` and wait for completion.

        Completion is the page's ``done`` event when ``wait_for_done`` is set,
        the load event otherwise. The tab stays open on success; call
        ``close()`` when finished. On failure the target is closed before the
        error is re-raised.

        Returns:
            This tab, with ``result`` holding the ``done`` payload.

        Raises:
            TabTimeoutError: ``timeout`` elapsed first.
            PageError: the page logged an error and ``fail_on_error`` is set.
            NavigationError: the browser could not navigate to ``url``.
            TabSessionError: the tab was already opened.
        """
        if self.state is not TabState.CONSTRUCTED:
            raise TabSessionError(f'Tab is already {self.state.value}; use a new Tab for another page')

        self.url = url
        loop = asyncio.get_running_loop()
        self._completion = loop.create_future()
        if self.settings.timeout > 0:
            self._timer = loop.call_later(self.settings.timeout, self._on_timeout)

        setup = asyncio.create_task(self._setup(url))
        try:
            await self._completion
        except BaseException:
            if not setup.done():
                setup.cancel()
            await asyncio.gather(setup, return_exceptions=True)
            await self._close_after_failure()
            raise
        await setup
        return self

    @classmethod
    async def open_url(cls, url: str, settings: TabSettings | None = None, **overrides: Any) -> 'Tab':
        """Shortcut for ``await Tab(settings, **overrides).open(url)``."""
        return await cls(settings, **overrides).open(url)

    async def _setup(self, url: str) -> None:
        try:
            self.state = TabState.CONNECTING
            self.target = await self.devtools.new_target()
            self.client = await self.devtools.connect(self.target)
            self._install_listeners()

            pending = self._call_handlers(EventKind.READY.value, self.target)
            if pending:
                await asyncio.gather(*pending)

            client = self.client
            await asyncio.gather(
                client.send.Network.enable(),
                client.send.Page.enable(),
                client.send.Log.enable(),
                client.send.Runtime.enable(),
            )
            viewport = self.settings.viewport
            await client.send.Emulation.setDeviceMetricsOverride(
                params={
                    'width': viewport.width,
                    'height': viewport.height,
                    'deviceScaleFactor': 0,
                    'mobile': False,
                }
            )
            await client.send.Page.addScriptToEvaluateOnNewDocument(params={'source': PAGE_HELPER})

            if self._settled:
                return
            self.state = TabState.NAVIGATING
            self._trace(f'[Tab] -> Navigate to {url}')
            result = await client.send.Page.navigate(params={'url': url})
            if result.get('errorText'):
                raise NavigationError(url, result['errorText'])
            self.frame_id = result.get('frameId')
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._trace(f'[Tab] -> Exception during open: {type(e).__name__}: {e}')
            self.reject(e)

    async def close(self) -> None:
        """Release the connection and close the target.

        Closing an unsettled tab rejects its completion first. Errors from the
        browser (e.g. the target is already gone) propagate.
        """
        if self.closed or self._closing:
            return
        self._closing = True
        if not self._settled and self._completion is not None:
            self.reject(TabSessionError(f'Tab {self.id} closed before completion'))
        self._cancel_timer()
        current = asyncio.current_task()
        for task in list(self._tasks):
            if task is not current and not task.done():
                task.cancel()

        client, target_id = self.client, self.id
        self.client = None
        self._trace(f'[Tab] -> Closing {target_id}')
        # The target is closed even when the websocket fails to shut down
        try:
            if client is not None:
                await self.devtools.disconnect(client)
        finally:
            try:
                if target_id is not None:
                    await self.devtools.close_target(target_id)
            finally:
                self.state = TabState.CLOSED
                self._closing = False

    async def _close_after_failure(self) -> None:
        try:
            await self.close()
        except Exception as e:
            logger.warning(f'[Tab] Failed to close tab {self.id} after error: {type(e).__name__}: {e}')

    async def __aenter__(self) -> 'Tab':
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if self.state is not TabState.CONSTRUCTED:
            await self.close()

    # ------------------------------------------------------------------
    # Settlement
    # ------------------------------------------------------------------

    def resolve(self, result: Any = None) -> bool:
        """Settle successfully. Returns False if the tab was already settled."""
        return self._settle(result=result)

    def reject(self, error: BaseException | str) -> bool:
        """Settle with ``error``. Returns False if the tab was already settled."""
        if not isinstance(error, BaseException):
            error = TabSessionError(str(error))
        return self._settle(error=error)

    def _settle(self, result: Any = None, error: BaseException | None = None) -> bool:
        if self._settled:
            return False
        self._settled = True
        self._cancel_timer()
        if not self.closed:
            self.state = TabState.SETTLED
        if error is not None:
            self.error = error
        else:
            self.result = result

        future = self._completion
        if future is not None and not future.done():
            if error is not None:
                future.set_exception(error)
            else:
                future.set_result(result)
        return True

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timeout(self) -> None:
        self._timer = None
        if self._settled:
            return
        logger.warning(f'[Tab] Timed out after {self.settings.timeout}s: {self.id} {self.url}')
        self.reject(TabTimeoutError(self.id, self.url, self.settings.timeout))

    # ------------------------------------------------------------------
    # Protocol listeners
    # ------------------------------------------------------------------

    def _listen(self, method: str, callback: Callable[[dict[str, Any]], None]) -> None:
        """Add ``callback`` for protocol event ``method``.

        cdp-use keeps one handler per method, so a single trampoline is
        registered per method and fans out to our callbacks in order.
        """
        listeners = self._protocol_listeners.get(method)
        if listeners is None:
            listeners = self._protocol_listeners[method] = []
            domain, event = method.split('.', 1)
            register = getattr(getattr(self.client.register, domain), event)
            register(lambda params, session_id=None, _method=method: self._on_protocol_event(_method, params))
        listeners.append(callback)

    def _on_protocol_event(self, method: str, params: dict[str, Any]) -> None:
        if self.closed:
            return
        for callback in list(self._protocol_listeners.get(method, [])):
            try:
                callback(params)
            except Exception as e:
                logger.error(f'[Tab] Error handling {method}: {type(e).__name__}: {e}', exc_info=True)
                self.reject(e)

    def _install_listeners(self) -> None:
        raw_events = list(DEFAULT_RAW_EVENTS)
        raw_events += [name for name in self.handlers.names() if _is_protocol_event(name) and name not in raw_events]
        for method in raw_events:
            self._listen(method, lambda params, _method=method: self._forward_raw(_method, params))

        self._listen('Page.loadEventFired', self._on_load_event_fired)
        self._listen('Log.entryAdded', self._on_log_entry_added)
        self._listen('Runtime.consoleAPICalled', self._on_console_api_called)
        self._listen('Runtime.exceptionThrown', self._on_exception_thrown)
        self._listen('Network.requestWillBeSent', self._on_request_will_be_sent)
        self._listen('Network.loadingFinished', self._on_loading_finished)
        self._listen('Network.loadingFailed', self._on_loading_failed)

    def _forward_raw(self, method: str, params: dict[str, Any]) -> None:
        self._emit(EventKind.EVENT.value, {'method': method, 'params': params})
        self._emit(method, params)

    def _on_load_event_fired(self, params: dict[str, Any]) -> None:
        self._trace('[Tab] -> loadEventFired')
        if self.state is TabState.NAVIGATING:
            self.state = TabState.ACTIVE
        self._emit(EventKind.LOAD.value, params)
        if not self.settings.wait_for_done:
            self.resolve()

    def _on_log_entry_added(self, params: dict[str, Any]) -> None:
        entry = params.get('entry') or {}
        self._trace(
            f'[Tab] -> {entry.get("networkRequestId")} {entry.get("source")} '
            f'{entry.get("level")}: {entry.get("text")} ({entry.get("url")})'
        )
        if entry.get('level') != 'error':
            return
        if self.settings.fail_on_error:
            logger.warning(f'[Tab] Page error on {self.id}: {entry.get("text")}')
            self.reject(PageError(entry))
        else:
            logger.debug(f'[Tab] Ignoring page error (fail_on_error=False): {entry.get("text")}')

    def _on_console_api_called(self, params: dict[str, Any]) -> None:
        call_type = params.get('type')
        args = params.get('args') or []

        if call_type != 'debug':
            text = message_to_string(args)
            console_logger.log(
                logging.INFO if self.settings.verbose else logging.DEBUG, f'CONSOLE.{call_type}: {text}'
            )
            message = {'type': call_type, 'text': text, 'args': args}
            name = f'console.{call_type}'
            self._emit(name if self.handlers.has(name) else EventKind.CONSOLE.value, message)
            return

        self._dispatch_message(decode_remote_object(args[0]) if args else None)

    def _on_exception_thrown(self, params: dict[str, Any]) -> None:
        details = params.get('exceptionDetails') or {}
        exception = details.get('exception') or {}
        self._trace(f'[Tab] EXCEPTION {exception.get("description") or details.get("text")}')
        self._emit(EventKind.EXCEPTION.value, details)

    def _on_request_will_be_sent(self, params: dict[str, Any]) -> None:
        if self.settings.verbose:
            request = params.get('request') or {}
            logger.info(f'-> {params.get("requestId")} {request.get("method")} {request.get("url", "")[:150]}')

    def _on_loading_finished(self, params: dict[str, Any]) -> None:
        if self.settings.verbose:
            logger.info(f'<- {params.get("requestId")} {params.get("encodedDataLength")}')

    def _on_loading_failed(self, params: dict[str, Any]) -> None:
        logger.debug(f'[Tab] loadingFailed: {params.get("requestId")} {params.get("errorText")}')

    # ------------------------------------------------------------------
    # Page messages
    # ------------------------------------------------------------------

    def _dispatch_message(self, payload: Any) -> None:
        record = EventRecord.from_payload(payload)
        claimed = self.handlers.has(record.event)
        self._emit(record.event, record.data)

        if record.event == EventKind.DONE.value:
            self._trace(f'[Tab] -> done {record.data!r}')
            if self.settings.wait_for_done:
                self._complete(record.data)
        elif record.event == EventKind.ABORT.value:
            if not claimed:
                self._abort(record)
        elif not claimed:
            self._trace(f'[Tab] CONSOLE (UNHANDLED MESSAGE) {payload!r}')

    def _complete(self, data: Any) -> None:
        if self._settled or self._completing:
            return
        if self.settings.screenshot:
            # Later done messages are ignored while the capture runs
            self._completing = True
            self._track(self._screenshot_then_resolve(data))
        else:
            self.resolve(data)

    async def _screenshot_then_resolve(self, data: Any) -> None:
        await self.screenshot(self.settings.screenshot_path)
        self.resolve(data)

    def _abort(self, record: EventRecord) -> None:
        code = DEFAULT_ABORT_CODE
        for source in (record.data, record.payload):
            if isinstance(source, int) and not isinstance(source, bool):
                code = source
                break
            if isinstance(source, dict) and source.get('code') is not None:
                try:
                    code = int(source['code'])
                    break
                except (TypeError, ValueError):
                    continue
        logger.warning(f'[Tab] Unhandled abort from {self.url} with code {code}')
        self.abort_handler(code)

    # ------------------------------------------------------------------
    # Handler dispatch
    # ------------------------------------------------------------------

    def _call_handlers(self, name: str, payload: Any) -> list[Any]:
        """Call every handler for ``name``; return awaitables they produced."""
        pending = []
        for handler in self.handlers.take(name):
            try:
                result = handler(payload, self) if _wants_tab(handler) else handler(payload)
            except Exception as e:
                logger.error(f'[Tab] Handler for {name!r} raised {type(e).__name__}: {e}', exc_info=True)
                self.reject(e)
                continue
            if inspect.isawaitable(result):
                pending.append(result)
        return pending

    def _emit(self, name: str, payload: Any) -> None:
        for awaitable in self._call_handlers(name, payload):
            self._track(awaitable)

    def _track(self, awaitable: Any) -> None:
        task = asyncio.ensure_future(awaitable)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f'[Tab] Handler task failed: {type(error).__name__}: {error}')
            self.reject(error)

    def _trace(self, message: str) -> None:
        logger.log(logging.INFO if self.settings.verbose else logging.DEBUG, message)

    # ------------------------------------------------------------------
    # Remote evaluation
    # ------------------------------------------------------------------

    def _require_client(self) -> CDPClient:
        if self.client is None:
            raise TabSessionError('Tab is not connected; call open() first')
        return self.client

    async def evaluate(self, expression: str, **options: Any) -> Any:
        """Evaluate ``expression`` in the page.

        Options are ``Runtime.evaluate`` parameters in camelCase or snake_case
        (``await_promise=True``). The value is JSON-parsed when it is a JSON
        string. Remote exceptions come back as their description string.

        Example:
            >>> await tab.evaluate('1 + 1')
            2
            >>> await tab.evaluate('JSON.stringify({a: 1})')
            {'a': 1}
        """
        client = self._require_client()
        params = {'expression': expression, **normalize_options(options)}
        response = await client.send.Runtime.evaluate(params=params)
        return unwrap_result(response)

    async def execute(self, reference: str, *args: Any) -> Any:
        """Call a page function by name or source with ``args``.

        A trailing dict whose keys overlap the evaluate options
        (``{'awaitPromise': True}``) is used as options, not as an argument.

        Example:
            >>> await tab.execute('add', 1, 2)
            3
            >>> await tab.execute('function (a) { return a.length }', [1, 2])
            2
        """
        call_args, options = split_options(args)
        expression = options.pop('expression', None) or build_call_expression(reference, *call_args)
        return await self.evaluate(expression, **options)

    async def screenshot(self, path: str | Path | None = None) -> Path:
        """Capture the page as PNG and write it to ``path``."""
        client = self._require_client()
        result = await client.send.Page.captureScreenshot(params={'format': 'png'})
        output = Path(path or self.settings.screenshot_path)
        output.write_bytes(base64.b64decode(result['data']))
        self._trace(f'[Tab] Screenshot saved to {output}')
        return output
