from reahl.tofu import Fixture
from reahl.tofu import NoException
from reahl.tofu import expected
from reahl.tofu import with_fixtures

from reahl.tfmcp.config import ServerConfiguration
from reahl.tfmcp.mcp.session_registry import BackendConnections
from reahl.tfmcp.terraform import DomainException
from reahl.tfmcp.terraform import TerraformApiError


class FakeTerraformClient:
    def __init__(self, address, token, verify=True, rejected_tokens=()):
        self.address = address
        self.token = token
        self.verify = verify
        self.rejected_tokens = rejected_tokens
        self.closed = False

    def account_details(self):
        if self.token in self.rejected_tokens:
            raise TerraformApiError(
                'Terraform API request /account/details failed with status 401',
                status_code=401,
                path='/account/details',
            )
        return {'id': 'user-1', 'type': 'users', 'username': 'ops-bot'}

    def close(self):
        self.closed = True


class RecordingCapabilityNotifier:
    def __init__(self):
        self.marked = []
        self.unmarked = []

    def mark_capable(self, session_id):
        self.marked.append(session_id)
        return len(self.marked) == 1

    def unmark_capable(self, session_id):
        self.unmarked.append(session_id)


class BackendConnectionsFixture(Fixture):
    def new_configuration(self):
        return ServerConfiguration(
            tfe_address='https://tfe.example.com',
            tfe_token='environment-token',
        )

    def new_created_clients(self):
        return []

    def new_credential_file_tokens(self):
        return {}

    def new_notifier(self):
        return RecordingCapabilityNotifier()

    def create_client(self, address, token, verify=True):
        client = FakeTerraformClient(
            address,
            token,
            verify=verify,
            rejected_tokens=('bad-token',),
        )
        self.created_clients.append(client)
        return client

    def read_credentials(self, hostname):
        return self.credential_file_tokens.get(hostname, '')

    def new_connections(self):
        connections = BackendConnections(
            self.configuration,
            client_factory=self.create_client,
            read_credentials=self.read_credentials,
        )
        connections.notify_capability_changes_to(self.notifier)
        return connections


class UnconfiguredConnectionsFixture(BackendConnectionsFixture):
    def new_configuration(self):
        return ServerConfiguration(tfe_address='https://tfe.example.com')


@with_fixtures(BackendConnectionsFixture)
def test_connect_and_disconnect(fixture):
    with expected(NoException):
        registered = fixture.connections.connect('session-1')

    assert registered
    assert fixture.connections.has_connection('session-1')
    assert fixture.connections.client_for('session-1') is fixture.created_clients[0]
    assert fixture.connections.metadata_for('session-1') == {
        'address': 'https://tfe.example.com',
        'credential_source': 'environment',
        'account_name': 'ops-bot',
    }
    assert fixture.notifier.marked == ['session-1']

    assert fixture.connections.disconnect('session-1')

    assert not fixture.connections.has_connection('session-1')
    assert fixture.created_clients[0].closed
    assert fixture.notifier.unmarked == ['session-1']
    assert not fixture.connections.disconnect('session-1')


@with_fixtures(BackendConnectionsFixture)
def test_connect_prefers_explicit_credentials(fixture):
    fixture.connections.connect(
        'session-1',
        token='argument-token',
        address='https://other.example.com/',
    )

    client = fixture.created_clients[0]
    assert client.token == 'argument-token'
    assert client.address == 'https://other.example.com'
    assert client.verify
    assert fixture.connections.metadata_for('session-1')['credential_source'] == 'arguments'


@with_fixtures(UnconfiguredConnectionsFixture)
def test_connect_falls_back_to_credentials_file(fixture):
    fixture.credential_file_tokens['tfe.example.com'] = 'file-token'

    fixture.connections.connect('session-1')

    assert fixture.created_clients[0].token == 'file-token'
    assert (
        fixture.connections.metadata_for('session-1')['credential_source']
        == 'credentials_file'
    )


@with_fixtures(UnconfiguredConnectionsFixture)
def test_connect_without_token_fails(fixture):
    with expected(DomainException):
        fixture.connections.connect('session-1')

    assert fixture.created_clients == []
    assert fixture.notifier.marked == []


@with_fixtures(BackendConnectionsFixture)
def test_rejected_token_closes_client_and_leaves_session_incapable(fixture):
    with expected(TerraformApiError):
        fixture.connections.connect('session-1', token='bad-token')

    assert fixture.created_clients[0].closed
    assert not fixture.connections.has_connection('session-1')
    assert fixture.notifier.marked == []


@with_fixtures(BackendConnectionsFixture)
def test_reconnect_replaces_previous_client(fixture):
    fixture.connections.connect('session-1')
    fixture.connections.connect('session-1', token='second-token')

    first_client, second_client = fixture.created_clients
    assert first_client.closed
    assert not second_client.closed
    assert fixture.connections.client_for('session-1') is second_client


@with_fixtures(BackendConnectionsFixture)
def test_session_started_connects_once_with_configured_credentials(fixture):
    assert not fixture.connections.is_started('session-1')

    assert fixture.connections.session_started('session-1')
    assert not fixture.connections.session_started('session-1')

    assert fixture.connections.is_started('session-1')
    assert len(fixture.created_clients) == 1
    assert fixture.connections.has_connection('session-1')


@with_fixtures(UnconfiguredConnectionsFixture)
def test_session_started_without_credentials_stays_disconnected(fixture):
    assert not fixture.connections.session_started('session-1')

    assert fixture.connections.is_started('session-1')
    assert not fixture.connections.has_connection('session-1')
    assert fixture.created_clients == []


class RejectedTokenConnectionsFixture(BackendConnectionsFixture):
    def new_configuration(self):
        return ServerConfiguration(
            tfe_address='https://tfe.example.com',
            tfe_token='bad-token',
        )


@with_fixtures(RejectedTokenConnectionsFixture)
def test_session_started_with_rejected_token_is_not_fatal(fixture):
    with expected(NoException):
        registered = fixture.connections.session_started('session-1')

    assert not registered
    assert not fixture.connections.has_connection('session-1')


@with_fixtures(BackendConnectionsFixture)
def test_session_ended_forgets_session(fixture):
    fixture.connections.session_started('session-1')

    fixture.connections.session_ended('session-1')

    assert not fixture.connections.is_started('session-1')
    assert not fixture.connections.has_connection('session-1')
    assert fixture.notifier.unmarked == ['session-1']


@with_fixtures(BackendConnectionsFixture)
def test_client_for_unknown_session_fails(fixture):
    with expected(DomainException):
        fixture.connections.client_for('missing-session')
    assert fixture.connections.metadata_for('missing-session') is None


@with_fixtures(BackendConnectionsFixture)
def test_close_all_disconnects_every_session(fixture):
    fixture.connections.connect('session-1')
    fixture.connections.connect('session-2')

    fixture.connections.close_all()

    assert fixture.connections.connected_session_ids() == []
    assert all(client.closed for client in fixture.created_clients)
    assert sorted(fixture.notifier.unmarked) == ['session-1', 'session-2']
