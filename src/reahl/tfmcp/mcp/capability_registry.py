"""Session capability tracking and one-time registration of gated tools.

Gated tools need an authenticated Terraform connection. They are registered
with the MCP server the first time any session is marked capable, each one
wrapped so that every call re-checks the capability of the calling session.
FastMCP cannot remove tools again, so unmarking a session only affects the
per-call check. The wrapper takes the registry lock in worker threads only,
never on the event loop.
"""

import functools
import inspect
import logging

import anyio
import anyio.to_thread
from mcp.server.fastmcp import Context

from reahl.tfmcp.mcp.locking import ReadWriteLock


class ToolRegistrationFailed(Exception):
    def __init__(self, tool_name, cause):
        super().__init__(
            'Could not register gated tool %s: %s' % (tool_name, cause)
        )
        self.tool_name = tool_name


def denied_tool_response(tool_name, reason, message):
    return {
        'ok': False,
        'tool_name': tool_name,
        'error': {
            'message': message,
            'reason': reason,
        },
    }


def no_session_response(tool_name):
    return denied_tool_response(
        tool_name,
        'no_session',
        (
            '%s requires an active session with valid '
            'Terraform Cloud/Enterprise configuration.'
        )
        % tool_name,
    )


def not_capable_response(tool_name):
    return denied_tool_response(
        tool_name,
        'not_capable',
        (
            '%s is not available. It requires a valid Terraform '
            'Cloud/Enterprise token and configuration. Ensure TFE_TOKEN and '
            'TFE_ADDRESS are set, or call connect_terraform first.'
        )
        % tool_name,
    )


def context_parameter_name(handler):
    for parameter in inspect.signature(handler).parameters.values():
        annotation = parameter.annotation
        if inspect.isclass(annotation) and issubclass(annotation, Context):
            return parameter.name
    return None


def context_argument(handler, context_argument_name, arguments, keywords):
    if context_argument_name is None:
        return None
    if context_argument_name in keywords:
        return keywords[context_argument_name]
    try:
        bound_arguments = inspect.signature(handler).bind_partial(
            *arguments,
            **keywords,
        )
    except TypeError:
        return None
    return bound_arguments.arguments.get(context_argument_name)


class DynamicToolRegistry:
    def __init__(
        self,
        mcp_server,
        tool_constructors,
        check_backend_capability,
        session_id_for_context,
    ):
        self.mcp_server = mcp_server
        self.tool_constructors = list(tool_constructors)
        self.check_backend_capability = check_backend_capability
        self.session_id_for_context = session_id_for_context
        self.lock = ReadWriteLock()
        self.capable_sessions = {}
        self.gated_tools_registered = False
        self.gated_tool_names = []

    @property
    def tools_registered(self):
        with self.lock.reading():
            return self.gated_tools_registered

    def mark_capable(self, session_id):
        """Record that session_id has a live Terraform connection.

        The first call ever made registers all gated tools before the lock is
        released, and returns True. Every other call returns False.
        """
        with self.lock.writing():
            self.capable_sessions[session_id] = True
            logging.getLogger(__name__).info(
                'Session %s registered with a Terraform connection',
                session_id,
            )
            if self.gated_tools_registered:
                return False
            self.gated_tools_registered = True
            self.register_gated_tools()
            return True

    def unmark_capable(self, session_id):
        with self.lock.writing():
            self.capable_sessions.pop(session_id, None)
        logging.getLogger(__name__).info(
            'Session %s unregistered from its Terraform connection',
            session_id,
        )

    def is_capable(self, session_id):
        with self.lock.reading():
            return self.capable_sessions.get(session_id, False)

    def any_capable(self):
        with self.lock.reading():
            return len(self.capable_sessions) > 0

    def registered_tool_names(self):
        with self.lock.reading():
            return list(self.gated_tool_names)

    def register_gated_tools(self):
        logging.getLogger(__name__).info(
            'Registering %s gated tools: first session with a valid '
            'Terraform connection detected',
            len(self.tool_constructors),
        )
        for tool_constructor in self.tool_constructors:
            tool_name = repr(tool_constructor)
            try:
                tool_definition = tool_constructor()
                tool_name = tool_definition.name
                self.mcp_server.add_tool(
                    self.capability_checked(tool_definition),
                    name=tool_definition.name,
                    description=tool_definition.description,
                    annotations=tool_definition.annotations,
                )
            except Exception as error:
                logging.getLogger(__name__).exception(
                    'Registering gated tool %s failed',
                    tool_name,
                )
                raise ToolRegistrationFailed(tool_name, error) from error
            self.gated_tool_names.append(tool_name)

    def capability_checked(self, tool_definition):
        handler = tool_definition.handler
        tool_name = tool_definition.name
        context_argument_name = context_parameter_name(handler)

        @functools.wraps(handler)
        async def capability_checked_tool(*arguments, **keywords):
            context = context_argument(
                handler,
                context_argument_name,
                arguments,
                keywords,
            )
            session_id = None
            if context is not None:
                session_id = self.session_id_for_context(context)
            if session_id is None:
                logging.getLogger(__name__).warning(
                    '%s called without session context',
                    tool_name,
                )
                return no_session_response(tool_name)
            session_capable = await anyio.to_thread.run_sync(
                self.is_capable,
                session_id,
            )
            if not session_capable:
                try:
                    backend_capable = await anyio.to_thread.run_sync(
                        self.check_backend_capability,
                        session_id,
                        abandon_on_cancel=True,
                    )
                except anyio.get_cancelled_exc_class():
                    logging.getLogger(__name__).info(
                        'Capability check for %s cancelled, not calling the tool',
                        tool_name,
                    )
                    raise
                if not backend_capable:
                    logging.getLogger(__name__).warning(
                        '%s called but session %s has no valid Terraform connection',
                        tool_name,
                        session_id,
                    )
                    return not_capable_response(tool_name)
                logging.getLogger(__name__).info(
                    'Session %s has a Terraform connection the registry did '
                    'not know about, marking it capable',
                    session_id,
                )
                await anyio.to_thread.run_sync(self.mark_capable, session_id)
            return await anyio.to_thread.run_sync(
                functools.partial(handler, *arguments, **keywords)
            )

        return capability_checked_tool
