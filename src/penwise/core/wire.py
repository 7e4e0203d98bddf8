from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Model whose JSON form uses camelCase keys, as the HTTP clients and queue payloads do."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)
