import os

from reahl.tfmcp.terraform import DEFAULT_ADDRESS
from reahl.tfmcp.toolsets import parsed_toolsets


STDIO = 'stdio'
STREAMABLE_HTTP = 'streamable-http'
TRANSPORTS = [STDIO, STREAMABLE_HTTP]

DEFAULT_HOST = '127.0.0.1'
DEFAULT_PORT = 8080
DEFAULT_ENDPOINT = '/mcp'


def environment_flag(environment, name):
    return environment.get(name, '').strip().lower() in {'1', 'true', 'yes'}


def transport_from_environment(environment):
    transport_mode = environment.get('TRANSPORT_MODE', '').strip().lower()
    if transport_mode in {'http', STREAMABLE_HTTP}:
        return STREAMABLE_HTTP
    if transport_mode == STDIO:
        return STDIO
    if any(
        environment.get(name)
        for name in ('TRANSPORT_HOST', 'TRANSPORT_PORT', 'MCP_ENDPOINT')
    ):
        return STREAMABLE_HTTP
    return STDIO


def port_number(port_text):
    try:
        port = int(port_text)
    except (TypeError, ValueError):
        raise ValueError('Invalid port: %s' % port_text)
    if not 0 < port < 65536:
        raise ValueError('Invalid port: %s' % port_text)
    return port


class ServerConfiguration:
    def __init__(
        self,
        tfe_address=DEFAULT_ADDRESS,
        tfe_token='',
        tfe_skip_tls_verify=False,
        enable_tf_operations=False,
        toolsets=None,
        transport=STDIO,
        host=DEFAULT_HOST,
        port=DEFAULT_PORT,
        mcp_endpoint=DEFAULT_ENDPOINT,
        stateless=False,
    ):
        if transport not in TRANSPORTS:
            raise ValueError(
                'Invalid transport: %s. Expected one of: %s'
                % (transport, ', '.join(TRANSPORTS))
            )
        self.tfe_address = (tfe_address or DEFAULT_ADDRESS).rstrip('/')
        self.tfe_token = tfe_token
        self.tfe_skip_tls_verify = tfe_skip_tls_verify
        self.enable_tf_operations = enable_tf_operations
        self.toolsets = parsed_toolsets('default') if toolsets is None else toolsets
        self.transport = transport
        self.host = host
        self.port = port
        self.mcp_endpoint = mcp_endpoint
        self.stateless = stateless

    @classmethod
    def from_environment(cls, environment=None):
        if environment is None:
            environment = os.environ
        return cls(
            tfe_address=environment.get('TFE_ADDRESS', '').strip() or DEFAULT_ADDRESS,
            tfe_token=environment.get('TFE_TOKEN', '').strip(),
            tfe_skip_tls_verify=environment_flag(environment, 'TFE_SKIP_TLS_VERIFY'),
            enable_tf_operations=environment_flag(environment, 'ENABLE_TF_OPERATIONS'),
            toolsets=parsed_toolsets(environment.get('TOOLSETS', 'default')),
            transport=transport_from_environment(environment),
            host=environment.get('TRANSPORT_HOST', '').strip() or DEFAULT_HOST,
            port=port_number(environment.get('TRANSPORT_PORT', '').strip() or DEFAULT_PORT),
            mcp_endpoint=environment.get('MCP_ENDPOINT', '').strip() or DEFAULT_ENDPOINT,
            stateless=environment.get('MCP_SESSION_MODE', '').strip().lower() == 'stateless',
        )

    @property
    def tfe_verify(self):
        return not self.tfe_skip_tls_verify

    def uses_http_transport(self):
        return self.transport == STREAMABLE_HTTP
