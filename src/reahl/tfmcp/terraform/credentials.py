import json
import os
import urllib.parse


def hostname_of(address):
    if not address:
        return ''
    try:
        return urllib.parse.urlsplit(address).hostname or ''
    except ValueError:
        return ''


def credentials_file_path(home=None):
    if home is None:
        home = os.path.expanduser('~')
    return os.path.join(home, '.terraform.d', 'credentials.tfrc.json')


def read_credentials_file(hostname, home=None):
    """Return the Terraform CLI token stored for hostname, or '' when there is none."""
    if not hostname:
        return ''
    try:
        with open(credentials_file_path(home), encoding='utf-8') as credentials_file:
            credentials = json.load(credentials_file)
    except (OSError, ValueError):
        return ''
    if not isinstance(credentials, dict):
        return ''
    entries = credentials.get('credentials')
    if not isinstance(entries, dict):
        return ''
    entry = entries.get(hostname)
    if not isinstance(entry, dict):
        return ''
    token = entry.get('token', '')
    if not isinstance(token, str):
        return ''
    return token
