"""
Typed account settings.

Account.settings is stored as JSON, but only these keys are accepted:

    default_tax_rate      Decimal percentage applied by quick entries when
                          the caller gives no rate (e.g. "18" for 18 %).
    hsn_sac_code          Tax classification code printed on documents.
    allow_reconciliation  False keeps the account from being linked to a
                          bank account.
    allow_manual_posting  False refuses manual postings to the account;
                          generated postings (recurring journals) still go
                          through.
    extensions            Free-form str -> str map for integrations.

Anything else is rejected, so arbitrary JSON never reaches the ledger.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Mapping

from bookkeeping_kernel.exceptions import ValidationError


class AccountSettingKey(str, Enum):
    DEFAULT_TAX_RATE = "default_tax_rate"
    HSN_SAC_CODE = "hsn_sac_code"
    ALLOW_RECONCILIATION = "allow_reconciliation"
    ALLOW_MANUAL_POSTING = "allow_manual_posting"
    EXTENSIONS = "extensions"


def _flag(raw: Mapping[str, Any], key: AccountSettingKey) -> bool:
    value = raw.get(key.value, True)
    if not isinstance(value, bool):
        raise ValidationError(f"{key.value} must be true or false", field=f"settings.{key.value}")
    return value


@dataclass(frozen=True)
class AccountSettings:
    default_tax_rate: Decimal | None = None
    hsn_sac_code: str | None = None
    allow_reconciliation: bool = True
    allow_manual_posting: bool = True
    extensions: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any] | None) -> AccountSettings:
        """Parse and validate a settings mapping.

        Raises:
            ValidationError: Unknown key, non-numeric or out-of-range tax
                rate, non-boolean flag, or non-string extension entries.
        """
        if not raw:
            return cls()

        known = {k.value for k in AccountSettingKey}
        unknown = sorted(set(raw) - known)
        if unknown:
            raise ValidationError(
                f"Unknown account setting(s): {', '.join(unknown)}",
                field="settings",
            )

        rate = raw.get(AccountSettingKey.DEFAULT_TAX_RATE.value)
        if rate is not None:
            try:
                rate = Decimal(str(rate))
            except InvalidOperation:
                raise ValidationError(
                    f"default_tax_rate must be numeric, got {rate!r}",
                    field="settings.default_tax_rate",
                )
            if rate < 0 or rate > 100:
                raise ValidationError(
                    "default_tax_rate must be between 0 and 100",
                    field="settings.default_tax_rate",
                )

        code = raw.get(AccountSettingKey.HSN_SAC_CODE.value)
        if code is not None and not isinstance(code, str):
            raise ValidationError("hsn_sac_code must be a string", field="settings.hsn_sac_code")

        extensions = raw.get(AccountSettingKey.EXTENSIONS.value) or {}
        if not isinstance(extensions, Mapping) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in extensions.items()
        ):
            raise ValidationError(
                "extensions must map strings to strings",
                field="settings.extensions",
            )

        return cls(
            default_tax_rate=rate,
            hsn_sac_code=code,
            allow_reconciliation=_flag(raw, AccountSettingKey.ALLOW_RECONCILIATION),
            allow_manual_posting=_flag(raw, AccountSettingKey.ALLOW_MANUAL_POSTING),
            extensions=dict(extensions),
        )

    def to_dict(self) -> dict[str, Any]:
        """JSON-safe representation; empty fields and default flags are omitted."""
        data: dict[str, Any] = {}
        if self.default_tax_rate is not None:
            data[AccountSettingKey.DEFAULT_TAX_RATE.value] = str(self.default_tax_rate)
        if self.hsn_sac_code is not None:
            data[AccountSettingKey.HSN_SAC_CODE.value] = self.hsn_sac_code
        if not self.allow_reconciliation:
            data[AccountSettingKey.ALLOW_RECONCILIATION.value] = False
        if not self.allow_manual_posting:
            data[AccountSettingKey.ALLOW_MANUAL_POSTING.value] = False
        if self.extensions:
            data[AccountSettingKey.EXTENSIONS.value] = dict(self.extensions)
        return data
