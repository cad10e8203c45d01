import argparse
import logging
import os
import sys

from reahl.tfmcp import __version__
from reahl.tfmcp.config import ServerConfiguration
from reahl.tfmcp.config import STREAMABLE_HTTP
from reahl.tfmcp.config import TRANSPORTS
from reahl.tfmcp.config import port_number
from reahl.tfmcp.mcp.server import create_server
from reahl.tfmcp.toolsets import parsed_toolsets
from reahl.tfmcp.toolsets import toolsets_help


LOG_LEVELS = ['DEBUG', 'INFO', 'WARNING', 'ERROR']
LOG_FORMAT = '%(asctime)s %(levelname)s %(name)s: %(message)s'


def new_argument_parser():
    parser = argparse.ArgumentParser(
        description='Run the Terraform MCP server.'
    )
    parser.add_argument(
        '--transport',
        default=None,
        choices=TRANSPORTS,
        help=(
            'MCP transport type. Defaults to TRANSPORT_MODE, or stdio '
            'when no HTTP settings are present.'
        ),
    )
    parser.add_argument(
        '--host',
        default=None,
        help='Host to bind the streamable-http transport to (TRANSPORT_HOST).',
    )
    parser.add_argument(
        '--port',
        default=None,
        help='Port for the streamable-http transport (TRANSPORT_PORT).',
    )
    parser.add_argument(
        '--mcp-endpoint',
        default=None,
        help='Path of the streamable-http endpoint (MCP_ENDPOINT).',
    )
    parser.add_argument(
        '--stateless',
        action='store_true',
        help='Serve streamable-http without MCP sessions (MCP_SESSION_MODE=stateless).',
    )
    parser.add_argument(
        '--tfe-address',
        default=None,
        help='HCP Terraform or Terraform Enterprise address (TFE_ADDRESS).',
    )
    parser.add_argument(
        '--tfe-skip-tls-verify',
        action='store_true',
        help='Do not verify TLS certificates of the Terraform API (TFE_SKIP_TLS_VERIFY).',
    )
    parser.add_argument(
        '--enable-tf-operations',
        action='store_true',
        help=(
            'Enable destructive Terraform operations such as applying runs '
            'and deleting workspaces (ENABLE_TF_OPERATIONS).'
        ),
    )
    parser.add_argument(
        '--toolsets',
        default=None,
        help=toolsets_help(),
    )
    parser.add_argument(
        '--log-file',
        default=None,
        help='Write logs to this file instead of stderr.',
    )
    parser.add_argument(
        '--log-level',
        default=None,
        choices=LOG_LEVELS,
        help='Logging level (LOG_LEVEL). Defaults to INFO.',
    )
    return parser


def configuration_from_arguments(arguments, environment=None):
    if environment is None:
        environment = os.environ
    configuration = ServerConfiguration.from_environment(environment)
    if arguments.transport:
        configuration.transport = arguments.transport
    elif any(
        value is not None
        for value in (arguments.host, arguments.port, arguments.mcp_endpoint)
    ):
        configuration.transport = STREAMABLE_HTTP
    if arguments.host:
        configuration.host = arguments.host
    if arguments.port is not None:
        configuration.port = port_number(arguments.port)
    if arguments.mcp_endpoint:
        configuration.mcp_endpoint = arguments.mcp_endpoint
    if arguments.stateless:
        configuration.stateless = True
    if arguments.tfe_address:
        configuration.tfe_address = arguments.tfe_address.rstrip('/')
    if arguments.tfe_skip_tls_verify:
        configuration.tfe_skip_tls_verify = True
    if arguments.enable_tf_operations:
        configuration.enable_tf_operations = True
    if arguments.toolsets is not None:
        configuration.toolsets = parsed_toolsets(arguments.toolsets)
    return configuration


def configure_logging(log_level='INFO', log_file=None):
    # stdout carries the stdio transport, so logs never go there
    if log_file:
        logging.basicConfig(
            filename=log_file,
            level=log_level,
            format=LOG_FORMAT,
            force=True,
        )
    else:
        logging.basicConfig(
            stream=sys.stderr,
            level=log_level,
            format=LOG_FORMAT,
            force=True,
        )


def run_application(command_line_arguments=None):
    parser = new_argument_parser()
    arguments = parser.parse_args(command_line_arguments)
    log_level = (
        arguments.log_level
        or os.environ.get('LOG_LEVEL', '').strip().upper()
        or 'INFO'
    )
    if log_level not in LOG_LEVELS:
        parser.error('Invalid LOG_LEVEL: %s' % log_level)
    try:
        configuration = configuration_from_arguments(arguments)
    except ValueError as error:
        parser.error(str(error))
    configure_logging(log_level=log_level, log_file=arguments.log_file)
    logging.getLogger(__name__).info(
        'Starting Terraform MCP server %s on %s transport for %s',
        __version__,
        configuration.transport,
        configuration.tfe_address,
    )
    if configuration.tfe_skip_tls_verify:
        logging.getLogger(__name__).warning(
            'TLS certificate verification of the Terraform API is disabled'
        )
    mcp_server = create_server(configuration)
    mcp_server.run(transport=configuration.transport)


if __name__ == '__main__':
    run_application()
