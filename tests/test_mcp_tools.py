import asyncio

from reahl.tofu import Fixture
from reahl.tofu import with_fixtures

from reahl.tfmcp.config import ServerConfiguration
from reahl.tfmcp.mcp.session_registry import BackendConnections
from reahl.tfmcp.mcp.tools import register_tools
from reahl.tfmcp.terraform import TerraformApiError


class FakeServerSession:
    def __init__(self):
        self.tool_list_changed_notifications = 0

    async def send_tool_list_changed(self):
        self.tool_list_changed_notifications = (
            self.tool_list_changed_notifications + 1
        )


class FakeRequestContext:
    def __init__(self, session):
        self.session = session


class FakeContext:
    def __init__(self, session=None):
        self.server_session = session

    @property
    def request_context(self):
        if self.server_session is None:
            raise ValueError('Context is not available outside of a request')
        return FakeRequestContext(self.server_session)

    @property
    def session(self):
        return self.request_context.session


class McpToolRegistrar:
    def __init__(self):
        self.registered_tools_by_name = {}
        self.added_tools_by_name = {}

    def tool(self):
        def register(function):
            self.registered_tools_by_name[function.__name__] = function
            return function

        return register

    def add_tool(self, function, name=None, description=None, annotations=None):
        self.added_tools_by_name[name] = function


class FakeTerraformClient:
    def __init__(self, address, token, verify=True):
        self.address = address
        self.token = token
        self.closed = False

    def account_details(self):
        if self.token == 'bad-token':
            raise TerraformApiError(
                'Terraform API request /account/details failed with status 401',
                status_code=401,
                path='/account/details',
            )
        return {'id': 'user-1', 'type': 'users', 'username': 'ops-bot'}

    def list_organizations(self, page_number=1, page_size=20):
        return {
            'items': [{'id': 'acme', 'type': 'organizations', 'name': 'acme'}],
            'pagination': {},
        }

    def close(self):
        self.closed = True


class ConnectionToolsFixture(Fixture):
    def new_configuration(self):
        return ServerConfiguration(tfe_address='https://tfe.example.com')

    def new_connections(self):
        return BackendConnections(
            self.configuration,
            client_factory=FakeTerraformClient,
            read_credentials=lambda hostname: '',
        )

    def new_registrar(self):
        return McpToolRegistrar()

    def new_registry(self):
        return register_tools(
            self.registrar,
            configuration=self.configuration,
            connections=self.connections,
        )

    def new_first_session(self):
        return FakeServerSession()

    def new_second_session(self):
        return FakeServerSession()

    def call(self, tool_name, session, **arguments):
        self.registry
        tool = self.registrar.registered_tools_by_name[tool_name]
        result = tool(ctx=FakeContext(session), **arguments)
        if asyncio.iscoroutine(result):
            return asyncio.run(result)
        return result

    def call_gated(self, tool_name, session, **arguments):
        tool = self.registrar.added_tools_by_name[tool_name]
        return asyncio.run(tool(ctx=FakeContext(session), **arguments))


@with_fixtures(ConnectionToolsFixture)
def test_connection_tools_are_always_registered(fixture):
    fixture.registry

    assert sorted(fixture.registrar.registered_tools_by_name) == [
        'connect_terraform',
        'disconnect_terraform',
        'terraform_connection_status',
    ]
    assert fixture.registrar.added_tools_by_name == {}
    assert not fixture.registry.tools_registered


@with_fixtures(ConnectionToolsFixture)
def test_connect_terraform_registers_gated_tools_and_notifies(fixture):
    result = fixture.call(
        'connect_terraform',
        fixture.first_session,
        token='valid-token',
    )

    assert result['ok']
    assert result['session_capable']
    assert result['gated_tools_registered']
    assert result['connection'] == {
        'address': 'https://tfe.example.com',
        'credential_source': 'arguments',
        'account_name': 'ops-bot',
    }
    assert 'list_terraform_orgs' in fixture.registrar.added_tools_by_name
    assert fixture.first_session.tool_list_changed_notifications == 1


@with_fixtures(ConnectionToolsFixture)
def test_second_connection_does_not_notify_again(fixture):
    fixture.call('connect_terraform', fixture.first_session, token='valid-token')
    tool_count = len(fixture.registrar.added_tools_by_name)

    result = fixture.call('connect_terraform', fixture.second_session, token='valid-token')

    assert result['ok']
    assert fixture.second_session.tool_list_changed_notifications == 0
    assert len(fixture.registrar.added_tools_by_name) == tool_count


@with_fixtures(ConnectionToolsFixture)
def test_connect_terraform_without_token_fails(fixture):
    result = fixture.call('connect_terraform', fixture.first_session)

    assert not result['ok']
    assert 'No Terraform token available for tfe.example.com' in result['error']['message']
    assert not fixture.registry.tools_registered


@with_fixtures(ConnectionToolsFixture)
def test_connect_terraform_with_rejected_token_fails(fixture):
    result = fixture.call('connect_terraform', fixture.first_session, token='bad-token')

    assert not result['ok']
    assert result['error']['status_code'] == 401
    assert not fixture.registry.tools_registered


@with_fixtures(ConnectionToolsFixture)
def test_gated_tools_follow_the_calling_session(fixture):
    fixture.call('connect_terraform', fixture.first_session, token='valid-token')

    capable_result = fixture.call_gated('list_terraform_orgs', fixture.first_session)
    denied_result = fixture.call_gated('list_terraform_orgs', fixture.second_session)

    assert capable_result['ok']
    assert capable_result['organizations'] == [{'id': 'acme', 'name': 'acme'}]
    assert not denied_result['ok']
    assert denied_result['error']['reason'] == 'not_capable'


@with_fixtures(ConnectionToolsFixture)
def test_disconnect_terraform_denies_gated_tools(fixture):
    fixture.call('connect_terraform', fixture.first_session, token='valid-token')

    result = fixture.call('disconnect_terraform', fixture.first_session)

    assert result['ok']
    assert not result['session_capable']
    assert result['connection'] is None
    assert result['gated_tools_registered']
    denied_result = fixture.call_gated('list_terraform_orgs', fixture.first_session)
    assert denied_result['error']['reason'] == 'not_capable'


@with_fixtures(ConnectionToolsFixture)
def test_disconnect_without_connection_fails(fixture):
    result = fixture.call('disconnect_terraform', fixture.first_session)

    assert not result['ok']
    assert result['error']['message'] == 'This session has no Terraform connection.'


@with_fixtures(ConnectionToolsFixture)
def test_connection_status(fixture):
    fixture.call('connect_terraform', fixture.first_session, token='valid-token')

    first_status = fixture.call('terraform_connection_status', fixture.first_session)
    second_status = fixture.call('terraform_connection_status', fixture.second_session)

    assert first_status['session_capable']
    assert first_status['connection']['account_name'] == 'ops-bot'
    assert not second_status['session_capable']
    assert second_status['any_session_capable']
    assert second_status['connection'] is None


@with_fixtures(ConnectionToolsFixture)
def test_connection_tools_need_a_session(fixture):
    result = fixture.call('terraform_connection_status', None)

    assert not result['ok']
    assert result['error']['message'] == (
        'terraform_connection_status requires an active MCP session.'
    )
