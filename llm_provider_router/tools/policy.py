"""Per-tenant, per-channel tool enablement policies."""

from typing import Any, Protocol

from pydantic import BaseModel, Field

from .models import Channel

DEFAULT_TENANT = "default"


class ToolPolicy(Protocol):
    """Decides whether a tenant may use a tool on a channel."""

    def is_tool_enabled(self, tenant_id: str, tool_name: str, channel: Channel) -> bool:
        ...


class AllowAllPolicy:
    """Policy that enables every tool everywhere."""

    def is_tool_enabled(self, tenant_id: str, tool_name: str, channel: Channel) -> bool:
        return True


class ChannelPolicy(BaseModel):
    """Tools enabled on one channel."""
    enabled_tools: list[str] = Field(default_factory=list)


class TenantSettings(BaseModel):
    """Tool settings for one tenant."""
    enabled_tools: list[str] = Field(default_factory=list)
    channel_policies: dict[Channel, ChannelPolicy] = Field(default_factory=dict)
    feature_flags: dict[str, bool] = Field(default_factory=dict)


class TenantToolPolicy:
    """
    Policy built from per-tenant settings.

    A tool is enabled when all of these hold:
    - it is in the tenant's ``enabled_tools``
    - it is in the ``enabled_tools`` of the channel's policy
    - the ``tool.<name>`` feature flag is not explicitly false

    Tenants without settings use the ``default`` tenant's settings.
    """

    def __init__(self, tenants: dict[str, TenantSettings]):
        self.tenants = dict(tenants)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TenantToolPolicy":
        return cls({tenant_id: TenantSettings.model_validate(settings) for tenant_id, settings in data.items()})

    def get_settings(self, tenant_id: str) -> TenantSettings | None:
        return self.tenants.get(tenant_id) or self.tenants.get(DEFAULT_TENANT)

    def is_tool_enabled(self, tenant_id: str, tool_name: str, channel: Channel) -> bool:
        settings = self.get_settings(tenant_id)
        if settings is None:
            return False

        globally_enabled = tool_name in settings.enabled_tools
        channel_policy = settings.channel_policies.get(Channel(channel))
        channel_enabled = channel_policy is not None and tool_name in channel_policy.enabled_tools
        flag_enabled = settings.feature_flags.get(f"tool.{tool_name}") is not False
        return globally_enabled and channel_enabled and flag_enabled
