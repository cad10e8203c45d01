import logging
import threading

from reahl.tfmcp.terraform import DomainException
from reahl.tfmcp.terraform import TerraformClient
from reahl.tfmcp.terraform import hostname_of
from reahl.tfmcp.terraform import read_credentials_file


class BackendConnections:
    """Validated Terraform clients, one per MCP session.

    A capability notifier (anything with mark_capable and unmark_capable) is
    told whenever a session gains or loses its connection.
    """

    def __init__(
        self,
        configuration,
        client_factory=TerraformClient,
        read_credentials=read_credentials_file,
    ):
        self.configuration = configuration
        self.client_factory = client_factory
        self.read_credentials = read_credentials
        self.lock = threading.RLock()
        self.clients_by_session_id = {}
        self.metadata_by_session_id = {}
        self.started_session_ids = set()
        self.capability_notifier = None

    def notify_capability_changes_to(self, capability_notifier):
        self.capability_notifier = capability_notifier

    def resolved_credentials(self, token='', address=''):
        address = (address or self.configuration.tfe_address).strip().rstrip('/')
        if token:
            return address, token, 'arguments'
        if self.configuration.tfe_token:
            return address, self.configuration.tfe_token, 'environment'
        file_token = self.read_credentials(hostname_of(address))
        if file_token:
            return address, file_token, 'credentials_file'
        return address, '', ''

    def connect(self, session_id, token='', address=''):
        """Open and validate a connection for session_id.

        Returns True when this connection caused the gated tools to be
        registered.
        """
        address, token, credential_source = self.resolved_credentials(
            token,
            address,
        )
        if not token:
            raise DomainException(
                (
                    'No Terraform token available for %s. Set TFE_TOKEN, '
                    'add credentials to ~/.terraform.d/credentials.tfrc.json '
                    'or pass a token.'
                )
                % (hostname_of(address) or address)
            )
        logging.getLogger(__name__).debug(
            'Connecting session %s to %s using %s credentials',
            session_id,
            address,
            credential_source,
        )
        client = self.client_factory(
            address,
            token,
            verify=self.configuration.tfe_verify,
        )
        try:
            account = client.account_details()
        except DomainException:
            client.close()
            raise
        metadata = {
            'address': address,
            'credential_source': credential_source,
            'account_name': account.get('username', ''),
        }
        with self.lock:
            previous_client = self.clients_by_session_id.get(session_id)
            self.clients_by_session_id[session_id] = client
            self.metadata_by_session_id[session_id] = metadata
            self.started_session_ids.add(session_id)
        if previous_client is not None:
            previous_client.close()
        logging.getLogger(__name__).info(
            'Session %s connected to %s as %s',
            session_id,
            address,
            metadata['account_name'],
        )
        if self.capability_notifier is None:
            return False
        return self.capability_notifier.mark_capable(session_id)

    def is_started(self, session_id):
        with self.lock:
            return session_id in self.started_session_ids

    def session_started(self, session_id):
        with self.lock:
            if session_id in self.started_session_ids:
                return False
            self.started_session_ids.add(session_id)
        address, token, credential_source = self.resolved_credentials()
        if not token:
            logging.getLogger(__name__).debug(
                'Session %s started without Terraform credentials',
                session_id,
            )
            return False
        try:
            return self.connect(session_id)
        except DomainException as error:
            logging.getLogger(__name__).warning(
                'Could not connect session %s to %s using %s credentials: %s',
                session_id,
                address,
                credential_source,
                error,
            )
            return False

    def disconnect(self, session_id):
        with self.lock:
            client = self.clients_by_session_id.pop(session_id, None)
            self.metadata_by_session_id.pop(session_id, None)
        if client is None:
            return False
        client.close()
        if self.capability_notifier is not None:
            self.capability_notifier.unmark_capable(session_id)
        logging.getLogger(__name__).info('Session %s disconnected', session_id)
        return True

    def session_ended(self, session_id):
        self.disconnect(session_id)
        with self.lock:
            self.started_session_ids.discard(session_id)

    def has_connection(self, session_id):
        with self.lock:
            return session_id in self.clients_by_session_id

    def client_for(self, session_id):
        with self.lock:
            client = self.clients_by_session_id.get(session_id)
        if client is None:
            raise DomainException(
                'No Terraform connection for this session. '
                'Call connect_terraform or set TFE_TOKEN and TFE_ADDRESS.'
            )
        return client

    def metadata_for(self, session_id):
        with self.lock:
            metadata = self.metadata_by_session_id.get(session_id)
            return None if metadata is None else dict(metadata)

    def connected_session_ids(self):
        with self.lock:
            return list(self.clients_by_session_id)

    def close_all(self):
        for session_id in self.connected_session_ids():
            self.disconnect(session_id)
