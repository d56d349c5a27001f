from pydantic import BaseModel, Field
from typing import Literal


class FeeConfig(BaseModel):
    fee_rate: float = Field(default=1.1, gt=0)  # satoshis per byte
    minimum_output_value: int = Field(default=546, ge=0)
    dust_limit: int = Field(default=546, ge=0)


class PayloadConfig(BaseModel):
    max_file_size: int = Field(default=90000, gt=0)
    gzip_threshold: int = Field(default=1000, ge=0)
    max_script_size: int = Field(default=100000, gt=0)


class NetworkConfig(BaseModel):
    whatsonchain_url: str = "https://api.whatsonchain.com/v1/bsv/main"
    metanet_url: str = "https://metanaria.planaria.network"
    bitdb_url: str = "https://genesis.bitdb.network/q/1FnauZ9aUH2Bex6JzdcV4eNX7oLSSEbxtN"
    bitdb_key: str = "1DzNX2LzKrmoyYVyqMG46LLknzSd7TUYYP"
    timeout: float = Field(default=30.0, gt=0)
    poll_interval: float = Field(default=1.0, gt=0)
    ancestor_limit: int = Field(default=25, gt=0)
    viewer_url: str = "https://codeonchain.network"


class BsvPushConfig(BaseModel):
    fees: FeeConfig = Field(default_factory=FeeConfig)
    payload: PayloadConfig = Field(default_factory=PayloadConfig)
    network: NetworkConfig = Field(default_factory=NetworkConfig)
    log_level: Literal["debug", "info", "warn", "error"] = "info"
