from reahl.tfmcp.terraform.client import DEFAULT_ADDRESS
from reahl.tfmcp.terraform.client import DomainException
from reahl.tfmcp.terraform.client import TerraformApiError
from reahl.tfmcp.terraform.client import TerraformClient
from reahl.tfmcp.terraform.client import flattened_resource
from reahl.tfmcp.terraform.client import listed_resources
from reahl.tfmcp.terraform.client import terraform_error_payload
from reahl.tfmcp.terraform.credentials import hostname_of
from reahl.tfmcp.terraform.credentials import read_credentials_file

__all__ = [
    'DEFAULT_ADDRESS',
    'DomainException',
    'TerraformApiError',
    'TerraformClient',
    'flattened_resource',
    'hostname_of',
    'listed_resources',
    'read_credentials_file',
    'terraform_error_payload',
]
