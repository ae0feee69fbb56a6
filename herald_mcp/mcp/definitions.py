from typing import Dict, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, StrictBool, StrictFloat, StrictInt, StrictStr

TOOL_HEALTH = "herald_health"
TOOL_INVENTORY = "herald_inventory"
TOOL_AUDIT = "herald_audit"
TOOL_ROTATE_CACHE = "herald_rotate_cache"
TOOL_SYNC = "herald_sync"
TOOL_ROTATE = "herald_rotate"
TOOL_PROVISION_SECRET = "herald_provision_secret"

READ_ONLY_TOOLS = {TOOL_HEALTH, TOOL_INVENTORY, TOOL_AUDIT}
DESTRUCTIVE_TOOLS = {TOOL_ROTATE_CACHE, TOOL_ROTATE}
IDEMPOTENT_TOOLS = {TOOL_ROTATE_CACHE, TOOL_SYNC, TOOL_PROVISION_SECRET}


class ToolArguments(BaseModel):
    # Unknown keys are dropped. Field types use the Strict* variants so JSON
    # strings are never coerced into numbers or booleans.
    model_config = ConfigDict(extra="ignore")


class HealthArguments(ToolArguments):
    pass


class InventoryArguments(ToolArguments):
    pass


class AuditArguments(ToolArguments):
    stack: Optional[StrictStr] = None
    secret: Optional[StrictStr] = None
    hours: Optional[Union[StrictInt, StrictFloat]] = None


class RotateCacheArguments(ToolArguments):
    stack: StrictStr


class SyncArguments(ToolArguments):
    stack: StrictStr
    env_content: StrictStr = Field(
        description="Raw env file contents with op:// refs, e.g. 'KEY=op://Vault/Item/field'"
    )
    out_path: Optional[StrictStr] = None
    bypass_cache: Optional[StrictBool] = None


class RotateArguments(ToolArguments):
    item_id: StrictStr


class FieldSpec(ToolArguments):
    value: Optional[StrictStr] = Field(
        default=None, description="Field value; omit or leave empty to auto-generate"
    )
    concealed: Optional[StrictBool] = Field(
        default=None,
        description="Store as concealed/password field (auto-detected from field name if omitted)",
    )


class ProvisionSecretArguments(ToolArguments):
    vault: StrictStr = Field(description='Vault name, e.g. "HomeLab"')
    item: StrictStr = Field(description='Item title, e.g. "my-app-prod"')
    category: Optional[Literal["login", "api_credentials", "secure_note"]] = Field(
        default=None, description="Item category (default: login)"
    )
    fields: Dict[str, FieldSpec] = Field(description="Map of field names to their spec")


TOOL_DESCRIPTIONS: Dict[str, str] = {
    TOOL_HEALTH: "Check Herald service health and provider status",
    TOOL_INVENTORY: "Get full secret coverage map across all stacks",
    TOOL_AUDIT: "Query audit log for secret access history",
    TOOL_ROTATE_CACHE: "Force fresh secret fetch for a stack (purge cache)",
    TOOL_SYNC: (
        "Resolve op:// secrets for a stack. env_content is the raw env file contents "
        'with op:// refs (e.g. "KEY=op://Vault/Item/field\\nKEY2=op://...").'
    ),
    TOOL_ROTATE: (
        "Trigger cache invalidation + redeployment for stacks using a 1Password item. "
        "Does NOT change the secret value in 1Password: update the value there first, "
        "then call this."
    ),
    TOOL_PROVISION_SECRET: (
        "Create or upsert a secret item in a 1Password vault. Fields with empty values "
        "are auto-generated. Returns op:// refs for each field. Note: if the item already "
        "exists, only MISSING fields are added; existing field values are never overwritten."
    ),
}


def tool_annotations(name: str) -> Dict[str, bool]:
    read_only = name in READ_ONLY_TOOLS
    return {
        "readOnlyHint": read_only,
        "destructiveHint": name in DESTRUCTIVE_TOOLS,
        "idempotentHint": name in IDEMPOTENT_TOOLS or read_only,
        "openWorldHint": True,
    }
