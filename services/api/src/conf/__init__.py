from typing import Optional

from pydantic import BaseModel

from utils import auth, env, log
from utils.env import EnvVarSpec

logger = log.get_logger(__name__)

# Set to True to enable authentication
USE_AUTH = True

#### Types ####

class HttpServerConf(BaseModel):
    host: str
    port: int
    autoreload: bool

class BlockchainConf(BaseModel):
    rpc_url: str
    private_key: Optional[str] = None
    timeout: float
    token_address: str

class IpfsConf(BaseModel):
    host: str
    port: int
    protocol: str
    pinata_jwt: Optional[str] = None

#### Env Vars ####

## Auth ##

AUTH_OIDC_JWK_URL = EnvVarSpec(id="AUTH_OIDC_JWK_URL")
AUTH_OIDC_AUDIENCE = EnvVarSpec(id="AUTH_OIDC_AUDIENCE")
AUTH_OIDC_ISSUER = EnvVarSpec(id="AUTH_OIDC_ISSUER")

## Logging ##

LOG_LEVEL = EnvVarSpec(id="LOG_LEVEL", default="INFO")

ENVIRONMENT = EnvVarSpec(id="ENVIRONMENT", default="development")

## HTTP ##

HTTP_HOST = EnvVarSpec(id="HTTP_HOST", default="0.0.0.0")

HTTP_PORT = EnvVarSpec(id="HTTP_PORT", default="8000", parse=int, type=(int, ...))

HTTP_AUTORELOAD = EnvVarSpec(
    id="HTTP_AUTORELOAD",
    parse=lambda x: x.lower() == "true",
    default="false",
    type=(bool, ...),
)

HTTP_EXPOSE_ERRORS = EnvVarSpec(
    id="HTTP_EXPOSE_ERRORS",
    default="false",
    parse=lambda x: x.lower() == "true",
    type=(bool, ...),
)

## Blockchain ##

BLOCKCHAIN_RPC_URL = EnvVarSpec(id="BLOCKCHAIN_RPC_URL", default="http://localhost:8545")

BLOCKCHAIN_PRIVATE_KEY = EnvVarSpec(id="BLOCKCHAIN_PRIVATE_KEY", is_optional=True, is_secret=True)

BLOCKCHAIN_TIMEOUT_S = EnvVarSpec(
    id="BLOCKCHAIN_TIMEOUT_S",
    default="15",
    parse=float,
    type=(float, ...),
)

CARBON_TOKEN_ADDRESS = EnvVarSpec(
    id="CARBON_TOKEN_ADDRESS",
    default="0x555ab359988f83854eB2A89B1841E4fA5A6592b2",
)

## Storage ##

IPFS_HOST = EnvVarSpec(id="IPFS_HOST", default="localhost")

IPFS_PORT = EnvVarSpec(id="IPFS_PORT", default="5001", parse=int, type=(int, ...))

IPFS_PROTOCOL = EnvVarSpec(id="IPFS_PROTOCOL", default="http")

PINATA_JWT = EnvVarSpec(id="PINATA_JWT", is_optional=True, is_secret=True)

## Marketplace ##

LISTING_DEFAULT_PRICE = EnvVarSpec(
    id="LISTING_DEFAULT_PRICE",
    default="0.001",
    parse=float,
    type=(float, ...),
)

UPLOAD_MAX_FILE_SIZE = EnvVarSpec(
    id="UPLOAD_MAX_FILE_SIZE",
    default=str(50 * 1024 * 1024),
    parse=int,
    type=(int, ...),
)

#### Validation ####
VALIDATED_ENV_VARS = [
    HTTP_AUTORELOAD,
    HTTP_EXPOSE_ERRORS,
    HTTP_PORT,
    LOG_LEVEL,
    ENVIRONMENT,
    BLOCKCHAIN_RPC_URL,
    BLOCKCHAIN_PRIVATE_KEY,
    BLOCKCHAIN_TIMEOUT_S,
    CARBON_TOKEN_ADDRESS,
    IPFS_HOST,
    IPFS_PORT,
    IPFS_PROTOCOL,
    PINATA_JWT,
    LISTING_DEFAULT_PRICE,
    UPLOAD_MAX_FILE_SIZE,
]

# Only validate auth vars if USE_AUTH is True
if USE_AUTH:
    VALIDATED_ENV_VARS.extend([
        AUTH_OIDC_JWK_URL,
        AUTH_OIDC_AUDIENCE,
        AUTH_OIDC_ISSUER,
    ])

def validate() -> bool:
    return env.validate(VALIDATED_ENV_VARS)

#### Getters ####

def get_auth_config() -> auth.AuthClientConfig:
    """Get authentication configuration."""
    return auth.AuthClientConfig(
        jwk_url=env.parse(AUTH_OIDC_JWK_URL),
        audience=env.parse(AUTH_OIDC_AUDIENCE),
        issuer=env.parse(AUTH_OIDC_ISSUER),
    )

def get_http_expose_errors() -> bool:
    return env.parse(HTTP_EXPOSE_ERRORS)

def get_log_level() -> str:
    return env.parse(LOG_LEVEL)

def get_environment() -> str:
    return env.parse(ENVIRONMENT)

def get_http_conf() -> HttpServerConf:
    return HttpServerConf(
        host=env.parse(HTTP_HOST),
        port=env.parse(HTTP_PORT),
        autoreload=env.parse(HTTP_AUTORELOAD),
    )

def get_blockchain_conf() -> BlockchainConf:
    return BlockchainConf(
        rpc_url=env.parse(BLOCKCHAIN_RPC_URL),
        private_key=env.parse(BLOCKCHAIN_PRIVATE_KEY),
        timeout=env.parse(BLOCKCHAIN_TIMEOUT_S),
        token_address=env.parse(CARBON_TOKEN_ADDRESS),
    )

def get_ipfs_conf() -> IpfsConf:
    return IpfsConf(
        host=env.parse(IPFS_HOST),
        port=env.parse(IPFS_PORT),
        protocol=env.parse(IPFS_PROTOCOL),
        pinata_jwt=env.parse(PINATA_JWT),
    )

def get_listing_default_price() -> float:
    return env.parse(LISTING_DEFAULT_PRICE)

def get_upload_max_file_size() -> int:
    return env.parse(UPLOAD_MAX_FILE_SIZE)
