import json
import logging
import time

import httpx


DEFAULT_ADDRESS = 'https://app.terraform.io'
DEFAULT_TIMEOUT = 30.0
DEFAULT_RETRY_MAX = 3
MAXIMUM_BACKOFF = 30.0
JSON_API_CONTENT_TYPE = 'application/vnd.api+json'
USER_AGENT = 'reahl-terraformmcp'


class DomainException(Exception):
    pass


class TerraformApiError(DomainException):
    def __init__(self, message, status_code=None, path='', details=None):
        super().__init__(message)
        self.status_code = status_code
        self.path = path
        self.details = details or []


class TerraformClient:
    def __init__(
        self,
        address,
        token,
        verify=True,
        transport=None,
        timeout=DEFAULT_TIMEOUT,
        retry_max=DEFAULT_RETRY_MAX,
        sleep=time.sleep,
    ):
        if not token:
            raise DomainException('A Terraform API token is required.')
        self.address = (address or DEFAULT_ADDRESS).rstrip('/')
        self.retry_max = retry_max
        self.sleep = sleep
        self.http_client = httpx.Client(
            base_url='%s/api/v2' % self.address,
            headers={
                'Authorization': 'Bearer %s' % token,
                'Content-Type': JSON_API_CONTENT_TYPE,
                'Accept': JSON_API_CONTENT_TYPE,
                'User-Agent': USER_AGENT,
            },
            verify=verify,
            timeout=timeout,
            transport=transport,
        )

    def close(self):
        self.http_client.close()

    def request(self, method, path, params=None, payload=None):
        content = None if payload is None else json.dumps(payload)
        attempt = 0
        while True:
            logging.getLogger(__name__).debug(
                'Requesting %s %s params=%s',
                method,
                path,
                params,
            )
            try:
                response = self.http_client.request(
                    method,
                    path,
                    params=params,
                    content=content,
                )
            except httpx.HTTPError as error:
                raise TerraformApiError(
                    'Request to %s failed: %s' % (path, error),
                    path=path,
                ) from error
            if response.status_code != 429 or attempt >= self.retry_max:
                break
            attempt = attempt + 1
            delay = retry_delay(response, attempt)
            logging.getLogger(__name__).warning(
                'Rate limited on %s %s, retrying in %.1fs (attempt %s of %s)',
                method,
                path,
                delay,
                attempt,
                self.retry_max,
            )
            self.sleep(delay)
        if response.is_error:
            raise api_error_from_response(response, path)
        if not response.content:
            return {}
        return response.json()

    def get(self, path, params=None):
        return self.request('GET', path, params=params)

    def post(self, path, payload=None):
        return self.request('POST', path, payload=payload)

    def patch(self, path, payload):
        return self.request('PATCH', path, payload=payload)

    def delete(self, path, payload=None):
        return self.request('DELETE', path, payload=payload)

    def account_details(self):
        return flattened_resource(self.get('/account/details')['data'])

    def list_organizations(self, page_number=1, page_size=20):
        return listed_resources(
            self.get(
                '/organizations',
                params=page_parameters(page_number, page_size),
            )
        )

    def list_projects(self, organization, page_number=1, page_size=20):
        return listed_resources(
            self.get(
                '/organizations/%s/projects' % organization,
                params=page_parameters(page_number, page_size),
            )
        )

    def list_workspaces(
        self,
        organization,
        search='',
        project_id='',
        tags='',
        page_number=1,
        page_size=20,
    ):
        params = page_parameters(page_number, page_size)
        if search:
            params['search[name]'] = search
        if project_id:
            params['filter[project][id]'] = project_id
        if tags:
            params['search[tags]'] = tags
        return listed_resources(
            self.get('/organizations/%s/workspaces' % organization, params=params)
        )

    def read_workspace(self, organization, workspace_name):
        return flattened_resource(
            self.get(
                '/organizations/%s/workspaces/%s' % (organization, workspace_name)
            )['data']
        )

    def read_workspace_by_id(self, workspace_id):
        return flattened_resource(self.get('/workspaces/%s' % workspace_id)['data'])

    def create_workspace(self, organization, attributes, project_id=''):
        data = {
            'type': 'workspaces',
            'attributes': attributes,
        }
        if project_id:
            data['relationships'] = {
                'project': {'data': {'type': 'projects', 'id': project_id}},
            }
        return flattened_resource(
            self.post(
                '/organizations/%s/workspaces' % organization,
                {'data': data},
            )['data']
        )

    def update_workspace(self, organization, workspace_name, attributes):
        return flattened_resource(
            self.patch(
                '/organizations/%s/workspaces/%s' % (organization, workspace_name),
                {'data': {'type': 'workspaces', 'attributes': attributes}},
            )['data']
        )

    def safe_delete_workspace(self, workspace_id):
        self.post('/workspaces/%s/actions/safe-delete' % workspace_id)

    def list_runs(self, workspace_id, page_number=1, page_size=20):
        return listed_resources(
            self.get(
                '/workspaces/%s/runs' % workspace_id,
                params=page_parameters(page_number, page_size),
            )
        )

    def read_run(self, run_id):
        return flattened_resource(self.get('/runs/%s' % run_id)['data'])

    def create_run(self, workspace_id, attributes):
        return flattened_resource(
            self.post(
                '/runs',
                {
                    'data': {
                        'type': 'runs',
                        'attributes': attributes,
                        'relationships': {
                            'workspace': {
                                'data': {'type': 'workspaces', 'id': workspace_id},
                            },
                        },
                    },
                },
            )['data']
        )

    def apply_run(self, run_id, comment=''):
        self.post('/runs/%s/actions/apply' % run_id, {'comment': comment})

    def discard_run(self, run_id, comment=''):
        self.post('/runs/%s/actions/discard' % run_id, {'comment': comment})

    def cancel_run(self, run_id, comment=''):
        self.post('/runs/%s/actions/cancel' % run_id, {'comment': comment})

    def list_workspace_variables(self, workspace_id):
        return listed_resources(self.get('/workspaces/%s/vars' % workspace_id))

    def create_workspace_variable(self, workspace_id, attributes):
        return flattened_resource(
            self.post(
                '/workspaces/%s/vars' % workspace_id,
                {'data': {'type': 'vars', 'attributes': attributes}},
            )['data']
        )

    def update_workspace_variable(self, workspace_id, variable_id, attributes):
        return flattened_resource(
            self.patch(
                '/workspaces/%s/vars/%s' % (workspace_id, variable_id),
                {
                    'data': {
                        'type': 'vars',
                        'id': variable_id,
                        'attributes': attributes,
                    },
                },
            )['data']
        )

    def list_workspace_tags(self, workspace_id):
        return listed_resources(
            self.get('/workspaces/%s/relationships/tags' % workspace_id)
        )

    def add_workspace_tags(self, workspace_id, tag_names):
        self.post(
            '/workspaces/%s/relationships/tags' % workspace_id,
            {
                'data': [
                    {'type': 'tags', 'attributes': {'name': tag_name}}
                    for tag_name in tag_names
                ],
            },
        )

    def list_variable_sets(self, organization, page_number=1, page_size=20):
        return listed_resources(
            self.get(
                '/organizations/%s/varsets' % organization,
                params=page_parameters(page_number, page_size),
            )
        )

    def create_variable_set(self, organization, attributes):
        return flattened_resource(
            self.post(
                '/organizations/%s/varsets' % organization,
                {'data': {'type': 'varsets', 'attributes': attributes}},
            )['data']
        )

    def create_variable_set_variable(self, variable_set_id, attributes):
        return flattened_resource(
            self.post(
                '/varsets/%s/relationships/vars' % variable_set_id,
                {'data': {'type': 'vars', 'attributes': attributes}},
            )['data']
        )

    def delete_variable_set_variable(self, variable_set_id, variable_id):
        self.delete(
            '/varsets/%s/relationships/vars/%s' % (variable_set_id, variable_id)
        )

    def apply_variable_set_to_workspaces(self, variable_set_id, workspace_ids):
        self.post(
            '/varsets/%s/relationships/workspaces' % variable_set_id,
            workspace_references(workspace_ids),
        )

    def remove_variable_set_from_workspaces(self, variable_set_id, workspace_ids):
        self.delete(
            '/varsets/%s/relationships/workspaces' % variable_set_id,
            workspace_references(workspace_ids),
        )

    def list_registry_providers(
        self,
        organization,
        search='',
        page_number=1,
        page_size=20,
    ):
        params = page_parameters(page_number, page_size)
        if search:
            params['q'] = search
        return listed_resources(
            self.get(
                '/organizations/%s/registry-providers' % organization,
                params=params,
            )
        )

    def read_registry_provider(
        self,
        organization,
        namespace,
        name,
        registry_name='private',
    ):
        return flattened_resource(
            self.get(
                '/organizations/%s/registry-providers/%s/%s/%s'
                % (organization, registry_name, namespace, name)
            )['data']
        )

    def list_registry_modules(
        self,
        organization,
        search='',
        page_number=1,
        page_size=20,
    ):
        params = page_parameters(page_number, page_size)
        if search:
            params['q'] = search
        return listed_resources(
            self.get(
                '/organizations/%s/registry-modules' % organization,
                params=params,
            )
        )

    def read_registry_module(
        self,
        organization,
        namespace,
        name,
        provider,
        registry_name='private',
    ):
        return flattened_resource(
            self.get(
                '/organizations/%s/registry-modules/%s/%s/%s/%s'
                % (organization, registry_name, namespace, name, provider)
            )['data']
        )


def page_parameters(page_number, page_size):
    return {
        'page[number]': page_number,
        'page[size]': page_size,
    }


def workspace_references(workspace_ids):
    return {
        'data': [
            {'type': 'workspaces', 'id': workspace_id}
            for workspace_id in workspace_ids
        ],
    }


def flattened_resource(resource):
    flattened = {
        'id': resource.get('id'),
        'type': resource.get('type'),
    }
    flattened.update(resource.get('attributes') or {})
    return flattened


def listed_resources(document):
    meta = document.get('meta') or {}
    return {
        'items': [flattened_resource(resource) for resource in document.get('data') or []],
        'pagination': meta.get('pagination') or {},
    }


def retry_delay(response, attempt):
    retry_after = response.headers.get('Retry-After', '').strip()
    if retry_after.isdigit():
        return float(retry_after)
    rate_limit_reset = response.headers.get('x-ratelimit-reset', '').strip()
    try:
        reset_after = float(rate_limit_reset)
    except ValueError:
        reset_after = 0.0
    if reset_after > 0:
        return reset_after
    return min(MAXIMUM_BACKOFF, 2.0 ** (attempt - 1))


def api_error_from_response(response, path):
    details = error_details(response)
    message = 'Terraform API request %s failed with status %s' % (
        path,
        response.status_code,
    )
    if details:
        message = message + ': ' + '; '.join(details)
    return TerraformApiError(
        message,
        status_code=response.status_code,
        path=path,
        details=details,
    )


def error_details(response):
    try:
        document = response.json()
    except ValueError:
        return []
    if not isinstance(document, dict):
        return []
    details = []
    for error in document.get('errors') or []:
        if isinstance(error, dict):
            parts = [
                str(error[key])
                for key in ('title', 'detail')
                if error.get(key)
            ]
            if parts:
                details.append(': '.join(parts))
        elif error:
            details.append(str(error))
    return details


def terraform_error_payload(error):
    payload = {
        'message': str(error),
    }
    add_error_status(error, payload)
    return payload


def add_error_status(error, payload):
    status_code = getattr(error, 'status_code', None)
    if status_code is not None:
        payload['status_code'] = status_code
    details = getattr(error, 'details', None)
    if details:
        payload['details'] = list(details)
