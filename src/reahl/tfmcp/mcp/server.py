from reahl.tfmcp.config import ServerConfiguration


SERVER_NAME = 'TerraformMCP'
SERVER_INSTRUCTIONS = (
    'Tools for HCP Terraform and Terraform Enterprise. Call connect_terraform '
    'first unless the server was started with TFE_TOKEN. Workspace, run, '
    'variable and registry tools appear once a session has a valid '
    'Terraform connection.'
)


class McpDependencyNotInstalled(Exception):
    pass


def import_fast_mcp():
    try:
        from mcp.server.fastmcp import FastMCP
    except ModuleNotFoundError as module_not_found_error:
        raise McpDependencyNotInstalled(
            'TerraformMCP requires the mcp package. '
            'Install with: pip install reahl-terraformmcp'
        ) from module_not_found_error
    return FastMCP


def import_tool_registration():
    try:
        from reahl.tfmcp.mcp.tools import register_tools
    except ModuleNotFoundError as module_not_found_error:
        if module_not_found_error.name in {'httpx', 'anyio'}:
            raise McpDependencyNotInstalled(
                'TerraformMCP requires %s. '
                'Install project dependencies first.' % module_not_found_error.name
            ) from module_not_found_error
        raise
    return register_tools


def create_server(configuration=None, connections=None):
    if configuration is None:
        configuration = ServerConfiguration.from_environment()
    fast_mcp = import_fast_mcp()
    register_tools = import_tool_registration()
    mcp_server = fast_mcp(
        name=SERVER_NAME,
        instructions=SERVER_INSTRUCTIONS,
        host=configuration.host,
        port=configuration.port,
        streamable_http_path=configuration.mcp_endpoint,
        stateless_http=configuration.stateless,
    )
    register_tools(
        mcp_server,
        configuration=configuration,
        connections=connections,
    )
    return mcp_server
