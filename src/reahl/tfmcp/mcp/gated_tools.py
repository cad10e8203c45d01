import functools
import logging

from mcp.server.fastmcp import Context
from mcp.types import ToolAnnotations

from reahl.tfmcp.terraform import DomainException
from reahl.tfmcp.terraform import TerraformApiError
from reahl.tfmcp.terraform import terraform_error_payload
from reahl.tfmcp.toolsets import DEFAULT_TOOLSETS
from reahl.tfmcp.toolsets import REGISTRY_PRIVATE
from reahl.tfmcp.toolsets import TERRAFORM
from reahl.tfmcp.toolsets import toolset_enabled


MAXIMUM_PAGE_SIZE = 100
SAFE_RUN_TYPES = ['plan_and_apply', 'refresh_state', 'plan_only', 'allow_empty_apply']
OPERATION_RUN_TYPES = SAFE_RUN_TYPES + ['auto_approve', 'is_destroy']
RUN_TYPE_ATTRIBUTES = {
    'plan_and_apply': {},
    'refresh_state': {'refresh-only': True},
    'plan_only': {'plan-only': True},
    'allow_empty_apply': {'allow-empty-apply': True},
    'auto_approve': {'auto-apply': True},
    'is_destroy': {'is-destroy': True},
}
RUN_ACTIONS = ['apply', 'discard', 'cancel']
VARIABLE_CATEGORIES = ['terraform', 'env']


class ToolDefinition:
    def __init__(
        self,
        name,
        description,
        handler,
        title='',
        read_only=False,
        destructive=False,
    ):
        self.name = name
        self.description = description
        self.handler = handler
        self.title = title
        self.read_only = read_only
        self.destructive = destructive

    @property
    def annotations(self):
        return ToolAnnotations(
            title=self.title or None,
            readOnlyHint=self.read_only,
            destructiveHint=self.destructive,
            openWorldHint=True,
        )


def validated_string(input_value, argument_name):
    if not isinstance(input_value, str):
        raise DomainException('%s must be a string.' % argument_name)
    return input_value


def validated_non_empty_string_stripped(input_value, argument_name):
    normalized_input_value = validated_string(input_value, argument_name).strip()
    if not normalized_input_value:
        raise DomainException('%s cannot be empty.' % argument_name)
    return normalized_input_value


def validated_optional_string(input_value, argument_name):
    if input_value is None:
        return ''
    return validated_string(input_value, argument_name).strip()


def validated_positive_integer(input_value, argument_name):
    if isinstance(input_value, bool) or not isinstance(input_value, int):
        raise DomainException('%s must be an integer.' % argument_name)
    if input_value <= 0:
        raise DomainException('%s must be greater than zero.' % argument_name)
    return input_value


def validated_page_size(input_value):
    page_size = validated_positive_integer(input_value, 'page_size')
    if page_size > MAXIMUM_PAGE_SIZE:
        raise DomainException(
            'page_size cannot be more than %s.' % MAXIMUM_PAGE_SIZE
        )
    return page_size


def validated_boolean(input_value, argument_name):
    if not isinstance(input_value, bool):
        raise DomainException('%s must be a boolean.' % argument_name)
    return input_value


def validated_boolean_or_none(input_value, argument_name):
    if input_value is None:
        return None
    return validated_boolean(input_value, argument_name)


def validated_choice(input_value, argument_name, choices):
    input_value = validated_non_empty_string_stripped(input_value, argument_name)
    if input_value not in choices:
        raise DomainException(
            'Invalid %s value. Expected one of: %s.'
            % (argument_name, ', '.join(choices))
        )
    return input_value


def parsed_comma_separated(input_value, argument_name, item_description):
    items = []
    for item in validated_string(input_value, argument_name).split(','):
        item = item.strip()
        if item and item not in items:
            items.append(item)
    if not items:
        raise DomainException(
            '%s must name at least one %s.' % (argument_name, item_description)
        )
    return items


def parsed_tag_names(tags):
    return parsed_comma_separated(tags, 'tags', 'tag')


def summary(resource, keys):
    return {
        key: resource[key]
        for key in ('id',) + keys
        if key in resource
    }


def organization_summary(organization):
    return summary(organization, ('name', 'email', 'created-at'))


def workspace_summary(workspace):
    return summary(
        workspace,
        (
            'name',
            'description',
            'execution-mode',
            'terraform-version',
            'working-directory',
            'auto-apply',
            'locked',
            'resource-count',
            'tag-names',
            'updated-at',
        ),
    )


def run_summary(run):
    return summary(
        run,
        (
            'status',
            'message',
            'source',
            'is-destroy',
            'plan-only',
            'refresh-only',
            'auto-apply',
            'created-at',
        ),
    )


def variable_summary(variable):
    return summary(
        variable,
        ('key', 'value', 'category', 'description', 'hcl', 'sensitive'),
    )


def variable_set_summary(variable_set):
    return summary(variable_set, ('name', 'description', 'global', 'priority'))


class GatedToolSupport:
    def __init__(self, connections, session_ids, allow_terraform_operations=False):
        self.connections = connections
        self.session_ids = session_ids
        self.allow_terraform_operations = allow_terraform_operations

    def client_for_context(self, ctx):
        session_id = self.session_ids.session_id_for_context(ctx)
        if session_id is None:
            raise DomainException('This tool requires an active MCP session.')
        return self.connections.client_for(session_id)

    def perform(self, ctx, tool_name, action):
        try:
            return action(self.client_for_context(ctx))
        except TerraformApiError as error:
            logging.getLogger(__name__).warning('%s failed: %s', tool_name, error)
            return {
                'ok': False,
                'error': terraform_error_payload(error),
            }
        except DomainException as error:
            return {
                'ok': False,
                'error': {'message': str(error)},
            }

    def run_types(self):
        if self.allow_terraform_operations:
            return OPERATION_RUN_TYPES
        return SAFE_RUN_TYPES


def list_terraform_orgs_tool(support):
    def list_terraform_orgs(ctx: Context, page_number=1, page_size=20):
        def list_organizations(client):
            listing = client.list_organizations(
                validated_positive_integer(page_number, 'page_number'),
                validated_page_size(page_size),
            )
            return {
                'ok': True,
                'organizations': [
                    organization_summary(organization)
                    for organization in listing['items']
                ],
                'pagination': listing['pagination'],
            }

        return support.perform(ctx, 'list_terraform_orgs', list_organizations)

    return ToolDefinition(
        'list_terraform_orgs',
        'Fetches a list of all Terraform organizations. Supports pagination.',
        list_terraform_orgs,
        title='List all Terraform organizations',
        read_only=True,
    )


def list_terraform_projects_tool(support):
    def list_terraform_projects(
        ctx: Context,
        terraform_org_name,
        page_number=1,
        page_size=20,
    ):
        def list_projects(client):
            listing = client.list_projects(
                validated_non_empty_string_stripped(
                    terraform_org_name,
                    'terraform_org_name',
                ),
                validated_positive_integer(page_number, 'page_number'),
                validated_page_size(page_size),
            )
            return {
                'ok': True,
                'projects': [
                    summary(project, ('name', 'description', 'created-at'))
                    for project in listing['items']
                ],
                'pagination': listing['pagination'],
            }

        return support.perform(ctx, 'list_terraform_projects', list_projects)

    return ToolDefinition(
        'list_terraform_projects',
        'Fetches the projects of a Terraform organization.',
        list_terraform_projects,
        title='List Terraform projects',
        read_only=True,
    )


def list_workspaces_tool(support):
    def list_workspaces(
        ctx: Context,
        terraform_org_name,
        search_query='',
        project_id='',
        tags='',
        page_number=1,
        page_size=20,
    ):
        def list_organization_workspaces(client):
            listing = client.list_workspaces(
                validated_non_empty_string_stripped(
                    terraform_org_name,
                    'terraform_org_name',
                ),
                search=validated_optional_string(search_query, 'search_query'),
                project_id=validated_optional_string(project_id, 'project_id'),
                tags=validated_optional_string(tags, 'tags'),
                page_number=validated_positive_integer(page_number, 'page_number'),
                page_size=validated_page_size(page_size),
            )
            return {
                'ok': True,
                'workspaces': [
                    workspace_summary(workspace)
                    for workspace in listing['items']
                ],
                'pagination': listing['pagination'],
            }

        return support.perform(ctx, 'list_workspaces', list_organization_workspaces)

    return ToolDefinition(
        'list_workspaces',
        (
            'Search and list Terraform workspaces in an organization, '
            'optionally filtered by name, project or comma-separated tags.'
        ),
        list_workspaces,
        title='List Terraform workspaces',
        read_only=True,
    )


def get_workspace_details_tool(support):
    def get_workspace_details(ctx: Context, terraform_org_name, workspace_name):
        def read_workspace(client):
            workspace = client.read_workspace(
                validated_non_empty_string_stripped(
                    terraform_org_name,
                    'terraform_org_name',
                ),
                validated_non_empty_string_stripped(workspace_name, 'workspace_name'),
            )
            return {
                'ok': True,
                'workspace': workspace,
            }

        return support.perform(ctx, 'get_workspace_details', read_workspace)

    return ToolDefinition(
        'get_workspace_details',
        'Fetches the full details of a Terraform workspace.',
        get_workspace_details,
        title='Get Terraform workspace details',
        read_only=True,
    )


def create_workspace_tool(support):
    def create_workspace(
        ctx: Context,
        terraform_org_name,
        workspace_name,
        description='',
        execution_mode='',
        terraform_version='',
        working_directory='',
        auto_apply=False,
        project_id='',
        tags='',
    ):
        def create_organization_workspace(client):
            attributes = {
                'name': validated_non_empty_string_stripped(
                    workspace_name,
                    'workspace_name',
                ),
                'auto-apply': validated_boolean(auto_apply, 'auto_apply'),
            }
            for attribute_name, input_value, argument_name in (
                ('description', description, 'description'),
                ('execution-mode', execution_mode, 'execution_mode'),
                ('terraform-version', terraform_version, 'terraform_version'),
                ('working-directory', working_directory, 'working_directory'),
            ):
                value = validated_optional_string(input_value, argument_name)
                if value:
                    attributes[attribute_name] = value
            if validated_optional_string(tags, 'tags'):
                attributes['tag-names'] = parsed_tag_names(tags)
            workspace = client.create_workspace(
                validated_non_empty_string_stripped(
                    terraform_org_name,
                    'terraform_org_name',
                ),
                attributes,
                project_id=validated_optional_string(project_id, 'project_id'),
            )
            return {
                'ok': True,
                'workspace': workspace_summary(workspace),
            }

        return support.perform(ctx, 'create_workspace', create_organization_workspace)

    return ToolDefinition(
        'create_workspace',
        'Creates a new Terraform workspace in an organization.',
        create_workspace,
        title='Create a Terraform workspace',
    )


def update_workspace_tool(support):
    def update_workspace(
        ctx: Context,
        terraform_org_name,
        workspace_name,
        new_name='',
        description=None,
        execution_mode='',
        terraform_version='',
        working_directory=None,
        auto_apply=None,
    ):
        def update_organization_workspace(client):
            attributes = {}
            for attribute_name, input_value, argument_name in (
                ('name', new_name, 'new_name'),
                ('execution-mode', execution_mode, 'execution_mode'),
                ('terraform-version', terraform_version, 'terraform_version'),
            ):
                value = validated_optional_string(input_value, argument_name)
                if value:
                    attributes[attribute_name] = value
            if description is not None:
                attributes['description'] = validated_string(description, 'description')
            if working_directory is not None:
                attributes['working-directory'] = validated_string(
                    working_directory,
                    'working_directory',
                )
            if auto_apply is not None:
                attributes['auto-apply'] = validated_boolean(auto_apply, 'auto_apply')
            if not attributes:
                raise DomainException('Provide at least one attribute to update.')
            workspace = client.update_workspace(
                validated_non_empty_string_stripped(
                    terraform_org_name,
                    'terraform_org_name',
                ),
                validated_non_empty_string_stripped(workspace_name, 'workspace_name'),
                attributes,
            )
            return {
                'ok': True,
                'workspace': workspace_summary(workspace),
            }

        return support.perform(ctx, 'update_workspace', update_organization_workspace)

    return ToolDefinition(
        'update_workspace',
        'Updates the settings of an existing Terraform workspace.',
        update_workspace,
        title='Update a Terraform workspace',
    )


def delete_workspace_safely_tool(support):
    def delete_workspace_safely(ctx: Context, workspace_id):
        def safe_delete(client):
            workspace_id_to_delete = validated_non_empty_string_stripped(
                workspace_id,
                'workspace_id',
            )
            workspace = client.read_workspace_by_id(workspace_id_to_delete)
            client.safe_delete_workspace(workspace_id_to_delete)
            return {
                'ok': True,
                'deleted_workspace': workspace_summary(workspace),
            }

        return support.perform(ctx, 'delete_workspace_safely', safe_delete)

    return ToolDefinition(
        'delete_workspace_safely',
        (
            'Safely deletes a Terraform workspace by ID, only if it is not '
            'managing any resources. This is a destructive operation.'
        ),
        delete_workspace_safely,
        title='Safely delete a Terraform workspace by ID',
        destructive=True,
    )


def list_runs_tool(support):
    def list_runs(
        ctx: Context,
        terraform_org_name,
        workspace_name,
        page_number=1,
        page_size=20,
    ):
        def list_workspace_runs(client):
            workspace = client.read_workspace(
                validated_non_empty_string_stripped(
                    terraform_org_name,
                    'terraform_org_name',
                ),
                validated_non_empty_string_stripped(workspace_name, 'workspace_name'),
            )
            listing = client.list_runs(
                workspace['id'],
                validated_positive_integer(page_number, 'page_number'),
                validated_page_size(page_size),
            )
            return {
                'ok': True,
                'workspace_id': workspace['id'],
                'runs': [run_summary(run) for run in listing['items']],
                'pagination': listing['pagination'],
            }

        return support.perform(ctx, 'list_runs', list_workspace_runs)

    return ToolDefinition(
        'list_runs',
        'Lists the runs of a Terraform workspace, most recent first.',
        list_runs,
        title='List Terraform runs',
        read_only=True,
    )


def get_run_details_tool(support):
    def get_run_details(ctx: Context, run_id):
        return support.perform(
            ctx,
            'get_run_details',
            lambda client: {
                'ok': True,
                'run': client.read_run(
                    validated_non_empty_string_stripped(run_id, 'run_id')
                ),
            },
        )

    return ToolDefinition(
        'get_run_details',
        'Fetches the details of a Terraform run.',
        get_run_details,
        title='Get Terraform run details',
        read_only=True,
    )


def create_run_tool(support):
    run_types = support.run_types()

    def create_run(
        ctx: Context,
        terraform_org_name,
        workspace_name,
        run_type='plan_and_apply',
        message='',
    ):
        def create_workspace_run(client):
            attributes = dict(
                RUN_TYPE_ATTRIBUTES[validated_choice(run_type, 'run_type', run_types)]
            )
            attributes['message'] = (
                validated_optional_string(message, 'message')
                or 'Triggered via Terraform MCP'
            )
            workspace = client.read_workspace(
                validated_non_empty_string_stripped(
                    terraform_org_name,
                    'terraform_org_name',
                ),
                validated_non_empty_string_stripped(workspace_name, 'workspace_name'),
            )
            run = client.create_run(workspace['id'], attributes)
            return {
                'ok': True,
                'run': run_summary(run),
            }

        return support.perform(ctx, 'create_run', create_workspace_run)

    return ToolDefinition(
        'create_run',
        (
            'Creates a new Terraform run in the specified workspace. '
            'Run types: %s.'
        )
        % ', '.join(run_types),
        create_run,
        title='Create a Terraform run',
        destructive=support.allow_terraform_operations,
    )


def action_run_tool(support):
    def action_run(ctx: Context, run_id, action, comment=''):
        def perform_run_action(client):
            run_id_to_act_on = validated_non_empty_string_stripped(run_id, 'run_id')
            chosen_action = validated_choice(action, 'action', RUN_ACTIONS)
            run_comment = validated_optional_string(comment, 'comment')
            if chosen_action == 'apply':
                client.apply_run(run_id_to_act_on, run_comment)
            elif chosen_action == 'discard':
                client.discard_run(run_id_to_act_on, run_comment)
            else:
                client.cancel_run(run_id_to_act_on, run_comment)
            return {
                'ok': True,
                'run_id': run_id_to_act_on,
                'action': chosen_action,
            }

        return support.perform(ctx, 'action_run', perform_run_action)

    return ToolDefinition(
        'action_run',
        'Applies, discards or cancels a Terraform run.',
        action_run,
        title='Perform an action on a Terraform run',
        destructive=True,
    )


def list_workspace_variables_tool(support):
    def list_workspace_variables(ctx: Context, terraform_org_name, workspace_name):
        def list_variables(client):
            workspace = client.read_workspace(
                validated_non_empty_string_stripped(
                    terraform_org_name,
                    'terraform_org_name',
                ),
                validated_non_empty_string_stripped(workspace_name, 'workspace_name'),
            )
            listing = client.list_workspace_variables(workspace['id'])
            return {
                'ok': True,
                'workspace_id': workspace['id'],
                'variables': [
                    variable_summary(variable)
                    for variable in listing['items']
                ],
            }

        return support.perform(ctx, 'list_workspace_variables', list_variables)

    return ToolDefinition(
        'list_workspace_variables',
        'Lists the variables of a Terraform workspace. Sensitive values are not returned.',
        list_workspace_variables,
        title='List workspace variables',
        read_only=True,
    )


def create_workspace_variable_tool(support):
    def create_workspace_variable(
        ctx: Context,
        terraform_org_name,
        workspace_name,
        key,
        value,
        category='terraform',
        description='',
        hcl=False,
        sensitive=False,
    ):
        def create_variable(client):
            attributes = {
                'key': validated_non_empty_string_stripped(key, 'key'),
                'value': validated_string(value, 'value'),
                'category': validated_choice(category, 'category', VARIABLE_CATEGORIES),
                'description': validated_optional_string(description, 'description'),
                'hcl': validated_boolean(hcl, 'hcl'),
                'sensitive': validated_boolean(sensitive, 'sensitive'),
            }
            workspace = client.read_workspace(
                validated_non_empty_string_stripped(
                    terraform_org_name,
                    'terraform_org_name',
                ),
                validated_non_empty_string_stripped(workspace_name, 'workspace_name'),
            )
            variable = client.create_workspace_variable(workspace['id'], attributes)
            return {
                'ok': True,
                'variable': variable_summary(variable),
            }

        return support.perform(ctx, 'create_workspace_variable', create_variable)

    return ToolDefinition(
        'create_workspace_variable',
        'Creates a Terraform or environment variable in a workspace.',
        create_workspace_variable,
        title='Create a workspace variable',
    )


def update_workspace_variable_tool(support):
    def update_workspace_variable(
        ctx: Context,
        terraform_org_name,
        workspace_name,
        variable_id,
        key='',
        value=None,
        description=None,
        hcl=None,
        sensitive=None,
    ):
        def update_variable(client):
            attributes = {}
            if validated_optional_string(key, 'key'):
                attributes['key'] = key.strip()
            if value is not None:
                attributes['value'] = validated_string(value, 'value')
            if description is not None:
                attributes['description'] = validated_string(description, 'description')
            for attribute_name, input_value in (('hcl', hcl), ('sensitive', sensitive)):
                flag = validated_boolean_or_none(input_value, attribute_name)
                if flag is not None:
                    attributes[attribute_name] = flag
            if not attributes:
                raise DomainException('Provide at least one attribute to update.')
            workspace = client.read_workspace(
                validated_non_empty_string_stripped(
                    terraform_org_name,
                    'terraform_org_name',
                ),
                validated_non_empty_string_stripped(workspace_name, 'workspace_name'),
            )
            variable = client.update_workspace_variable(
                workspace['id'],
                validated_non_empty_string_stripped(variable_id, 'variable_id'),
                attributes,
            )
            return {
                'ok': True,
                'variable': variable_summary(variable),
            }

        return support.perform(ctx, 'update_workspace_variable', update_variable)

    return ToolDefinition(
        'update_workspace_variable',
        'Updates an existing variable of a Terraform workspace.',
        update_workspace_variable,
        title='Update a workspace variable',
    )


def read_workspace_tags_tool(support):
    def read_workspace_tags(ctx: Context, terraform_org_name, workspace_name):
        def read_tags(client):
            workspace = client.read_workspace(
                validated_non_empty_string_stripped(
                    terraform_org_name,
                    'terraform_org_name',
                ),
                validated_non_empty_string_stripped(workspace_name, 'workspace_name'),
            )
            listing = client.list_workspace_tags(workspace['id'])
            return {
                'ok': True,
                'workspace_id': workspace['id'],
                'tags': [tag.get('name') for tag in listing['items']],
            }

        return support.perform(ctx, 'read_workspace_tags', read_tags)

    return ToolDefinition(
        'read_workspace_tags',
        'Reads all tags of a Terraform workspace.',
        read_workspace_tags,
        title='Read workspace tags',
        read_only=True,
    )


def create_workspace_tags_tool(support):
    def create_workspace_tags(ctx: Context, terraform_org_name, workspace_name, tags):
        def add_tags(client):
            tag_names = parsed_tag_names(tags)
            workspace = client.read_workspace(
                validated_non_empty_string_stripped(
                    terraform_org_name,
                    'terraform_org_name',
                ),
                validated_non_empty_string_stripped(workspace_name, 'workspace_name'),
            )
            client.add_workspace_tags(workspace['id'], tag_names)
            return {
                'ok': True,
                'workspace_id': workspace['id'],
                'added_tags': tag_names,
            }

        return support.perform(ctx, 'create_workspace_tags', add_tags)

    return ToolDefinition(
        'create_workspace_tags',
        'Adds comma-separated tags to a Terraform workspace.',
        create_workspace_tags,
        title='Add workspace tags',
    )


def list_variable_sets_tool(support):
    def list_variable_sets(
        ctx: Context,
        terraform_org_name,
        page_number=1,
        page_size=20,
    ):
        def list_organization_variable_sets(client):
            listing = client.list_variable_sets(
                validated_non_empty_string_stripped(
                    terraform_org_name,
                    'terraform_org_name',
                ),
                validated_positive_integer(page_number, 'page_number'),
                validated_page_size(page_size),
            )
            return {
                'ok': True,
                'variable_sets': [
                    variable_set_summary(variable_set)
                    for variable_set in listing['items']
                ],
                'pagination': listing['pagination'],
            }

        return support.perform(ctx, 'list_variable_sets', list_organization_variable_sets)

    return ToolDefinition(
        'list_variable_sets',
        'Lists the variable sets of a Terraform organization.',
        list_variable_sets,
        title='List variable sets',
        read_only=True,
    )


def create_variable_set_tool(support):
    def create_variable_set(
        ctx: Context,
        terraform_org_name,
        name,
        description='',
        global_variable_set=False,
    ):
        def create_organization_variable_set(client):
            attributes = {
                'name': validated_non_empty_string_stripped(name, 'name'),
                'description': validated_optional_string(description, 'description'),
                'global': validated_boolean(global_variable_set, 'global_variable_set'),
            }
            variable_set = client.create_variable_set(
                validated_non_empty_string_stripped(
                    terraform_org_name,
                    'terraform_org_name',
                ),
                attributes,
            )
            return {
                'ok': True,
                'variable_set': variable_set_summary(variable_set),
            }

        return support.perform(ctx, 'create_variable_set', create_organization_variable_set)

    return ToolDefinition(
        'create_variable_set',
        'Creates a variable set in a Terraform organization. A global variable '
        'set applies to every workspace of the organization.',
        create_variable_set,
        title='Create a variable set',
    )


def create_variable_in_variable_set_tool(support):
    def create_variable_in_variable_set(
        ctx: Context,
        variable_set_id,
        key,
        value,
        category='terraform',
        description='',
        hcl=False,
        sensitive=False,
    ):
        def create_variable(client):
            checked_variable_set_id = validated_non_empty_string_stripped(
                variable_set_id,
                'variable_set_id',
            )
            attributes = {
                'key': validated_non_empty_string_stripped(key, 'key'),
                'value': validated_string(value, 'value'),
                'category': validated_choice(category, 'category', VARIABLE_CATEGORIES),
                'description': validated_optional_string(description, 'description'),
                'hcl': validated_boolean(hcl, 'hcl'),
                'sensitive': validated_boolean(sensitive, 'sensitive'),
            }
            variable = client.create_variable_set_variable(
                checked_variable_set_id,
                attributes,
            )
            return {
                'ok': True,
                'variable_set_id': checked_variable_set_id,
                'variable': variable_summary(variable),
            }

        return support.perform(ctx, 'create_variable_in_variable_set', create_variable)

    return ToolDefinition(
        'create_variable_in_variable_set',
        'Creates a Terraform or environment variable in a variable set.',
        create_variable_in_variable_set,
        title='Create a variable in a variable set',
    )


def delete_variable_in_variable_set_tool(support):
    def delete_variable_in_variable_set(ctx: Context, variable_set_id, variable_id):
        def delete_variable(client):
            checked_variable_set_id = validated_non_empty_string_stripped(
                variable_set_id,
                'variable_set_id',
            )
            checked_variable_id = validated_non_empty_string_stripped(
                variable_id,
                'variable_id',
            )
            client.delete_variable_set_variable(checked_variable_set_id, checked_variable_id)
            return {
                'ok': True,
                'variable_set_id': checked_variable_set_id,
                'deleted_variable_id': checked_variable_id,
            }

        return support.perform(ctx, 'delete_variable_in_variable_set', delete_variable)

    return ToolDefinition(
        'delete_variable_in_variable_set',
        'Deletes a variable from a variable set.',
        delete_variable_in_variable_set,
        title='Delete a variable from a variable set',
        destructive=True,
    )


def changed_variable_set_workspaces(client_method, variable_set_id, workspace_ids):
    checked_variable_set_id = validated_non_empty_string_stripped(
        variable_set_id,
        'variable_set_id',
    )
    checked_workspace_ids = parsed_comma_separated(
        workspace_ids,
        'workspace_ids',
        'workspace',
    )
    client_method(checked_variable_set_id, checked_workspace_ids)
    return checked_variable_set_id, checked_workspace_ids


def attach_variable_set_to_workspaces_tool(support):
    def attach_variable_set_to_workspaces(ctx: Context, variable_set_id, workspace_ids):
        def attach(client):
            checked_variable_set_id, attached_workspace_ids = changed_variable_set_workspaces(
                client.apply_variable_set_to_workspaces,
                variable_set_id,
                workspace_ids,
            )
            return {
                'ok': True,
                'variable_set_id': checked_variable_set_id,
                'attached_workspace_ids': attached_workspace_ids,
            }

        return support.perform(ctx, 'attach_variable_set_to_workspaces', attach)

    return ToolDefinition(
        'attach_variable_set_to_workspaces',
        'Applies a variable set to a comma-separated list of workspace IDs.',
        attach_variable_set_to_workspaces,
        title='Attach a variable set to workspaces',
    )


def detach_variable_set_from_workspaces_tool(support):
    def detach_variable_set_from_workspaces(ctx: Context, variable_set_id, workspace_ids):
        def detach(client):
            checked_variable_set_id, detached_workspace_ids = changed_variable_set_workspaces(
                client.remove_variable_set_from_workspaces,
                variable_set_id,
                workspace_ids,
            )
            return {
                'ok': True,
                'variable_set_id': checked_variable_set_id,
                'detached_workspace_ids': detached_workspace_ids,
            }

        return support.perform(ctx, 'detach_variable_set_from_workspaces', detach)

    return ToolDefinition(
        'detach_variable_set_from_workspaces',
        'Removes a variable set from a comma-separated list of workspace IDs.',
        detach_variable_set_from_workspaces,
        title='Detach a variable set from workspaces',
    )


def search_private_modules_tool(support):
    def search_private_modules(
        ctx: Context,
        terraform_org_name,
        search_query='',
        page_number=1,
        page_size=20,
    ):
        def search_modules(client):
            listing = client.list_registry_modules(
                validated_non_empty_string_stripped(
                    terraform_org_name,
                    'terraform_org_name',
                ),
                search=validated_optional_string(search_query, 'search_query'),
                page_number=validated_positive_integer(page_number, 'page_number'),
                page_size=validated_page_size(page_size),
            )
            return {
                'ok': True,
                'modules': [
                    summary(
                        module,
                        ('name', 'namespace', 'provider', 'registry-name', 'status'),
                    )
                    for module in listing['items']
                ],
                'pagination': listing['pagination'],
            }

        return support.perform(ctx, 'search_private_modules', search_modules)

    return ToolDefinition(
        'search_private_modules',
        'Searches the private module registry of a Terraform organization.',
        search_private_modules,
        title='Search private modules',
        read_only=True,
    )


def get_private_module_details_tool(support):
    def get_private_module_details(
        ctx: Context,
        terraform_org_name,
        module_namespace,
        module_name,
        module_provider,
        registry_name='private',
    ):
        def read_module(client):
            module = client.read_registry_module(
                validated_non_empty_string_stripped(
                    terraform_org_name,
                    'terraform_org_name',
                ),
                validated_non_empty_string_stripped(module_namespace, 'module_namespace'),
                validated_non_empty_string_stripped(module_name, 'module_name'),
                validated_non_empty_string_stripped(module_provider, 'module_provider'),
                registry_name=validated_choice(
                    registry_name,
                    'registry_name',
                    ['private', 'public'],
                ),
            )
            return {
                'ok': True,
                'module': module,
            }

        return support.perform(ctx, 'get_private_module_details', read_module)

    return ToolDefinition(
        'get_private_module_details',
        'Fetches the details of a module in the private registry.',
        get_private_module_details,
        title='Get private module details',
        read_only=True,
    )


def search_private_providers_tool(support):
    def search_private_providers(
        ctx: Context,
        terraform_org_name,
        search_query='',
        page_number=1,
        page_size=20,
    ):
        def search_providers(client):
            listing = client.list_registry_providers(
                validated_non_empty_string_stripped(
                    terraform_org_name,
                    'terraform_org_name',
                ),
                search=validated_optional_string(search_query, 'search_query'),
                page_number=validated_positive_integer(page_number, 'page_number'),
                page_size=validated_page_size(page_size),
            )
            return {
                'ok': True,
                'providers': [
                    summary(provider, ('name', 'namespace', 'registry-name'))
                    for provider in listing['items']
                ],
                'pagination': listing['pagination'],
            }

        return support.perform(ctx, 'search_private_providers', search_providers)

    return ToolDefinition(
        'search_private_providers',
        'Searches the private provider registry of a Terraform organization.',
        search_private_providers,
        title='Search private providers',
        read_only=True,
    )


def get_private_provider_details_tool(support):
    def get_private_provider_details(
        ctx: Context,
        terraform_org_name,
        provider_namespace,
        provider_name,
        registry_name='private',
    ):
        def read_provider(client):
            provider = client.read_registry_provider(
                validated_non_empty_string_stripped(
                    terraform_org_name,
                    'terraform_org_name',
                ),
                validated_non_empty_string_stripped(provider_namespace, 'provider_namespace'),
                validated_non_empty_string_stripped(provider_name, 'provider_name'),
                registry_name=validated_choice(
                    registry_name,
                    'registry_name',
                    ['private', 'public'],
                ),
            )
            return {
                'ok': True,
                'provider': provider,
            }

        return support.perform(ctx, 'get_private_provider_details', read_provider)

    return ToolDefinition(
        'get_private_provider_details',
        'Fetches the details of a provider in the private registry.',
        get_private_provider_details,
        title='Get private provider details',
        read_only=True,
    )


TERRAFORM_TOOL_CONSTRUCTORS = [
    list_terraform_orgs_tool,
    list_terraform_projects_tool,
    list_workspaces_tool,
    get_workspace_details_tool,
    create_workspace_tool,
    update_workspace_tool,
    list_runs_tool,
    get_run_details_tool,
    create_run_tool,
    list_workspace_variables_tool,
    create_workspace_variable_tool,
    update_workspace_variable_tool,
    read_workspace_tags_tool,
    create_workspace_tags_tool,
    list_variable_sets_tool,
    create_variable_set_tool,
    create_variable_in_variable_set_tool,
    delete_variable_in_variable_set_tool,
    attach_variable_set_to_workspaces_tool,
    detach_variable_set_from_workspaces_tool,
]

TERRAFORM_OPERATION_TOOL_CONSTRUCTORS = [
    delete_workspace_safely_tool,
    action_run_tool,
]

PRIVATE_REGISTRY_TOOL_CONSTRUCTORS = [
    search_private_modules_tool,
    get_private_module_details_tool,
    search_private_providers_tool,
    get_private_provider_details_tool,
]


def gated_tool_constructors(
    connections,
    session_ids,
    toolsets=None,
    allow_terraform_operations=False,
):
    if toolsets is None:
        toolsets = DEFAULT_TOOLSETS
    support = GatedToolSupport(
        connections,
        session_ids,
        allow_terraform_operations=allow_terraform_operations,
    )
    constructors = []
    if toolset_enabled(TERRAFORM, toolsets):
        constructors.extend(TERRAFORM_TOOL_CONSTRUCTORS)
        if allow_terraform_operations:
            constructors.extend(TERRAFORM_OPERATION_TOOL_CONSTRUCTORS)
    if toolset_enabled(REGISTRY_PRIVATE, toolsets):
        constructors.extend(PRIVATE_REGISTRY_TOOL_CONSTRUCTORS)
    return [functools.partial(constructor, support) for constructor in constructors]
