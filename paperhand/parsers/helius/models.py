"""Pydantic models for Helius RPC and WebSocket payloads."""

from typing import Any

from pydantic import BaseModel, field_validator, model_validator


class HeliusTokenAccount(BaseModel):
    """One SPL token account from DAS getTokenAccounts."""

    address: str = ""
    owner: str = ""
    mint: str = ""
    amount: float = 0.0  # raw units

    model_config = {"extra": "ignore"}

    @field_validator("amount", mode="before")
    @classmethod
    def _none_to_zero(cls, v: object) -> object:
        return 0 if v is None else v


class UiTokenAmount(BaseModel):
    uiAmount: float | None = None
    decimals: int = 0
    amount: str = "0"

    model_config = {"extra": "ignore"}


class HeliusTokenBalance(BaseModel):
    """Entry of meta.preTokenBalances / meta.postTokenBalances."""

    accountIndex: int = 0
    mint: str = ""
    owner: str | None = None
    uiTokenAmount: UiTokenAmount | None = None

    model_config = {"extra": "ignore"}

    @property
    def ui_amount(self) -> float:
        if self.uiTokenAmount and self.uiTokenAmount.uiAmount is not None:
            return float(self.uiTokenAmount.uiAmount)
        return 0.0


class HeliusTransactionMeta(BaseModel):
    fee: int = 0
    err: dict | str | None = None
    preTokenBalances: list[HeliusTokenBalance] = []
    postTokenBalances: list[HeliusTokenBalance] = []

    model_config = {"extra": "ignore"}


class HeliusStreamTransaction(BaseModel):
    """``params.result`` of a transactionNotification frame.

    Helius puts meta under ``transaction.meta`` and the signature at the top
    level; older relays wrap everything in ``value`` and only carry
    ``transaction.signatures``. Both shapes are flattened here.
    """

    signature: str = ""
    slot: int = 0
    meta: HeliusTransactionMeta | None = None

    model_config = {"extra": "ignore"}

    @model_validator(mode="before")
    @classmethod
    def _flatten(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        if isinstance(data.get("value"), dict):
            data = data["value"]
        tx = data.get("transaction") if isinstance(data.get("transaction"), dict) else {}
        meta = data.get("meta") or tx.get("meta")
        signature = data.get("signature")
        if not signature:
            inner = tx.get("transaction") if isinstance(tx.get("transaction"), dict) else tx
            signatures = inner.get("signatures") or []
            signature = signatures[0] if signatures else ""
        return {"signature": signature, "slot": data.get("slot") or 0, "meta": meta}
