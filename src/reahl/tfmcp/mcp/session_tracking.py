import logging
import queue
import threading
import uuid
import weakref

import anyio.to_thread
from mcp import types


def session_of_context(context):
    if context is None:
        return None
    try:
        request_context = context.request_context
    except ValueError:
        return None
    return getattr(request_context, 'session', None)


class SessionIdentifiers:
    """Gives every live MCP client session an opaque, process-unique ID.

    When the session object is released its ID is queued, and a worker
    thread calls on_session_ended with it. The release may be noticed by
    the garbage collector in the middle of any code holding a lock, so
    the callback never runs inside the finalizer itself.
    """

    def __init__(self, on_session_ended=None):
        self.lock = threading.Lock()
        self.session_ids_by_session = weakref.WeakKeyDictionary()
        self.on_session_ended = on_session_ended
        self.ended_session_ids = queue.SimpleQueue()
        self.session_end_worker = None

    def session_id_for(self, session):
        with self.lock:
            session_id = self.session_ids_by_session.get(session)
            if session_id is None:
                self.start_session_end_worker()
                session_id = str(uuid.uuid4())
                self.session_ids_by_session[session] = session_id
                session_finalizer = weakref.finalize(
                    session,
                    self.end_session,
                    session_id,
                )
                session_finalizer.atexit = False
            return session_id

    def session_id_for_context(self, context):
        session = session_of_context(context)
        if session is None:
            return None
        return self.session_id_for(session)

    def start_session_end_worker(self):
        if self.session_end_worker is None:
            self.session_end_worker = threading.Thread(
                target=self.deliver_ended_sessions,
                name='session-end',
                daemon=True,
            )
            self.session_end_worker.start()

    def end_session(self, session_id):
        # called from a finalizer; it may not take any lock
        self.ended_session_ids.put(session_id)

    def deliver_ended_sessions(self):
        while True:
            session_id = self.ended_session_ids.get()
            logging.getLogger(__name__).debug('Session %s ended', session_id)
            if self.on_session_ended is None:
                continue
            try:
                self.on_session_ended(session_id)
            except Exception:
                logging.getLogger(__name__).exception(
                    'Ending session %s failed',
                    session_id,
                )

    def live_session_count(self):
        with self.lock:
            return len(self.session_ids_by_session)


def track_sessions(mcp_server, connections, session_ids):
    low_level_server = getattr(mcp_server, '_mcp_server', None)
    if low_level_server is None:
        return
    for request_type in (types.ListToolsRequest, types.CallToolRequest):
        request_handler = low_level_server.request_handlers.get(request_type)
        if request_handler is None:
            continue
        low_level_server.request_handlers[request_type] = session_tracking_handler(
            mcp_server,
            connections,
            session_ids,
            request_handler,
            notify_tool_list_changed=request_type is types.CallToolRequest,
        )


def session_tracking_handler(
    mcp_server,
    connections,
    session_ids,
    request_handler,
    notify_tool_list_changed=False,
):
    async def session_tracking_request_handler(request):
        context = mcp_server.get_context()
        session_id = session_ids.session_id_for_context(context)
        if session_id is not None and not connections.is_started(session_id):
            registered_gated_tools = await anyio.to_thread.run_sync(
                connections.session_started,
                session_id,
            )
            if registered_gated_tools and notify_tool_list_changed:
                await context.session.send_tool_list_changed()
        return await request_handler(request)

    return session_tracking_request_handler
