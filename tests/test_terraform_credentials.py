import json

from reahl.tfmcp.terraform import hostname_of
from reahl.tfmcp.terraform import read_credentials_file
from reahl.tfmcp.terraform.credentials import credentials_file_path


def test_hostname_of():
    assert hostname_of('https://app.terraform.io') == 'app.terraform.io'
    assert hostname_of('https://tfe.example.com:8443/') == 'tfe.example.com'
    assert hostname_of('') == ''
    assert hostname_of('not a url') == ''


def test_credentials_file_path():
    assert credentials_file_path('/home/ops') == (
        '/home/ops/.terraform.d/credentials.tfrc.json'
    )


def test_read_credentials_file(tmp_path):
    credentials_directory = tmp_path / '.terraform.d'
    credentials_directory.mkdir()
    (credentials_directory / 'credentials.tfrc.json').write_text(
        json.dumps(
            {
                'credentials': {
                    'app.terraform.io': {'token': 'cloud-token'},
                    'tfe.example.com': {'token': 42},
                },
            }
        )
    )

    assert read_credentials_file('app.terraform.io', home=str(tmp_path)) == 'cloud-token'
    assert read_credentials_file('tfe.example.com', home=str(tmp_path)) == ''
    assert read_credentials_file('other.example.com', home=str(tmp_path)) == ''
    assert read_credentials_file('', home=str(tmp_path)) == ''


def test_unreadable_credentials_file_gives_no_token(tmp_path):
    assert read_credentials_file('app.terraform.io', home=str(tmp_path)) == ''

    credentials_directory = tmp_path / '.terraform.d'
    credentials_directory.mkdir()
    credentials_file = credentials_directory / 'credentials.tfrc.json'
    for content in ['{not json', '[]', '{"credentials": []}']:
        credentials_file.write_text(content)
        assert read_credentials_file('app.terraform.io', home=str(tmp_path)) == ''
