import logging

import anyio.to_thread
from mcp.server.fastmcp import Context

from reahl.tfmcp.config import ServerConfiguration
from reahl.tfmcp.mcp.capability_registry import DynamicToolRegistry
from reahl.tfmcp.mcp.gated_tools import gated_tool_constructors
from reahl.tfmcp.mcp.session_registry import BackendConnections
from reahl.tfmcp.mcp.session_tracking import SessionIdentifiers
from reahl.tfmcp.mcp.session_tracking import track_sessions
from reahl.tfmcp.terraform import DomainException
from reahl.tfmcp.terraform import terraform_error_payload


def no_session_error_response(tool_name):
    return {
        'ok': False,
        'error': {
            'message': '%s requires an active MCP session.' % tool_name,
        },
    }


def register_tools(mcp_server, configuration=None, connections=None):
    if configuration is None:
        configuration = ServerConfiguration()
    if connections is None:
        connections = BackendConnections(configuration)
    session_ids = SessionIdentifiers(on_session_ended=connections.session_ended)
    registry = DynamicToolRegistry(
        mcp_server,
        gated_tool_constructors(
            connections,
            session_ids,
            toolsets=configuration.toolsets,
            allow_terraform_operations=configuration.enable_tf_operations,
        ),
        connections.has_connection,
        session_ids.session_id_for_context,
    )
    connections.notify_capability_changes_to(registry)

    def connection_status(session_id):
        return {
            'ok': True,
            'session_capable': registry.is_capable(session_id),
            'any_session_capable': registry.any_capable(),
            'gated_tools_registered': registry.tools_registered,
            'connection': connections.metadata_for(session_id),
        }

    @mcp_server.tool()
    async def connect_terraform(ctx: Context, token='', address=''):
        """Connect this session to HCP Terraform or Terraform Enterprise.

        Without a token the server uses TFE_TOKEN or the Terraform CLI
        credentials file. Without an address it uses TFE_ADDRESS.
        """
        session_id = session_ids.session_id_for_context(ctx)
        if session_id is None:
            return no_session_error_response('connect_terraform')
        try:
            registered_gated_tools = await anyio.to_thread.run_sync(
                connections.connect,
                session_id,
                token,
                address,
            )
        except DomainException as error:
            logging.getLogger(__name__).warning(
                'connect_terraform failed for session %s: %s',
                session_id,
                error,
            )
            return {
                'ok': False,
                'error': terraform_error_payload(error),
            }
        if registered_gated_tools:
            await ctx.session.send_tool_list_changed()
        return connection_status(session_id)

    @mcp_server.tool()
    def disconnect_terraform(ctx: Context):
        """Close the Terraform connection of this session."""
        session_id = session_ids.session_id_for_context(ctx)
        if session_id is None:
            return no_session_error_response('disconnect_terraform')
        if not connections.disconnect(session_id):
            return {
                'ok': False,
                'error': {
                    'message': 'This session has no Terraform connection.',
                },
            }
        return connection_status(session_id)

    @mcp_server.tool()
    def terraform_connection_status(ctx: Context):
        """Report whether this session has a Terraform connection."""
        session_id = session_ids.session_id_for_context(ctx)
        if session_id is None:
            return no_session_error_response('terraform_connection_status')
        return connection_status(session_id)

    track_sessions(mcp_server, connections, session_ids)
    return registry
