TERRAFORM = 'terraform'
REGISTRY_PRIVATE = 'registry-private'
ALL = 'all'
DEFAULT = 'default'

AVAILABLE_TOOLSETS = {
    TERRAFORM: 'HCP Terraform/TFE operations (workspaces, runs, variables, etc.)',
    REGISTRY_PRIVATE: 'Private registry access (HCP Terraform/TFE private modules)',
}
DEFAULT_TOOLSETS = [TERRAFORM]


def valid_toolset_ids():
    return set(AVAILABLE_TOOLSETS) | {ALL, DEFAULT}


def cleaned_toolsets(requested_toolsets):
    cleaned = []
    invalid = []
    valid_ids = valid_toolset_ids()
    for toolset in requested_toolsets:
        toolset = toolset.strip()
        if not toolset or toolset in cleaned:
            continue
        cleaned.append(toolset)
        if toolset not in valid_ids:
            invalid.append(toolset)
    return cleaned, invalid


def expanded_toolsets(toolsets):
    if DEFAULT not in toolsets:
        return list(toolsets)
    expanded = [toolset for toolset in toolsets if toolset != DEFAULT]
    for default_toolset in DEFAULT_TOOLSETS:
        if default_toolset not in expanded:
            expanded.append(default_toolset)
    return expanded


def parsed_toolsets(toolsets_text):
    cleaned, invalid = cleaned_toolsets(toolsets_text.split(','))
    if invalid:
        raise ValueError(
            'Invalid toolsets: %s. Available: %s'
            % (', '.join(invalid), ', '.join(sorted(valid_toolset_ids())))
        )
    return expanded_toolsets(cleaned or [DEFAULT])


def toolset_enabled(toolset, enabled_toolsets):
    return ALL in enabled_toolsets or toolset in enabled_toolsets


def toolsets_help():
    return (
        'Comma-separated list of tool groups to enable. '
        'Available: %s. '
        'Special keywords: all (every toolset), default (%s). '
        'Examples: --toolsets=terraform,registry-private or --toolsets=all.'
    ) % (', '.join(AVAILABLE_TOOLSETS), ', '.join(DEFAULT_TOOLSETS))
