"""
View models for blocked, warning and upsell states.

Everything here is inert data for the UI layer. Messaging depends on the
caller's role: admins get one action that leads to the plans route, viewers
are told to contact their administrator and never get an action they cannot
complete.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from bi_portal.access.models import (
    BlockReason,
    Role,
    SubscriptionStatusSnapshot,
)


CONTACT_ADMIN_MESSAGE = (
    "Entre em contato com o administrador da sua empresa para regularizar a assinatura."
)
BLOCKED_TITLE = "Acesso Bloqueado"
UPGRADE_TITLE = "Recurso não disponível"
LIMIT_TITLE = "Limite do plano atingido"


@dataclass(frozen=True)
class ScreenAction:
    """A single button: navigate somewhere, retry the check or sign out."""

    label: str
    kind: str
    target: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"label": self.label, "kind": self.kind, "target": self.target}


def sign_out_action(auth_route: str = "/auth") -> ScreenAction:
    return ScreenAction(label="Sair", kind="sign_out", target=auth_route)


@dataclass(frozen=True)
class BlockedScreen:
    title: str
    message: str
    reason: BlockReason
    actions: List[ScreenAction] = field(default_factory=list)
    hint: Optional[str] = None

    @property
    def recovery_action(self) -> Optional[ScreenAction]:
        for action in self.actions:
            if action.kind != "sign_out":
                return action
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "message": self.message,
            "reason": self.reason.value,
            "actions": [a.to_dict() for a in self.actions],
            "hint": self.hint,
        }


@dataclass(frozen=True)
class SubscriptionBanner:
    variant: str
    message: str
    cta: Optional[ScreenAction] = None
    hint: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "variant": self.variant,
            "message": self.message,
            "cta": self.cta.to_dict() if self.cta else None,
            "hint": self.hint,
        }


@dataclass(frozen=True)
class UpgradePrompt:
    title: str
    message: str
    feature_key: str
    cta: Optional[ScreenAction] = None
    hint: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "message": self.message,
            "feature_key": self.feature_key,
            "cta": self.cta.to_dict() if self.cta else None,
            "hint": self.hint,
        }


@dataclass(frozen=True)
class LimitAlert:
    title: str
    message: str
    current: int
    limit: int
    cta: Optional[ScreenAction] = None
    hint: Optional[str] = None

    @property
    def usage_label(self) -> str:
        return f"{self.current}/{self.limit}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "message": self.message,
            "current": self.current,
            "limit": self.limit,
            "usage": self.usage_label,
            "cta": self.cta.to_dict() if self.cta else None,
            "hint": self.hint,
        }


def _days(n: int) -> str:
    return "1 dia restante" if n == 1 else f"{n} dias restantes"


def build_blocked_screen(
    reason: BlockReason,
    role: Role,
    snapshot: Optional[SubscriptionStatusSnapshot] = None,
    plans_route: str = "/subscription",
    auth_route: str = "/auth",
    grace_period_days: int = 30,
    trial_days: int = 7,
) -> BlockedScreen:
    """
    Blocked screen for a BLOCKED decision.

    Admins get one recovery action plus sign out, and a note on which window
    ran out when the trial or the grace period expired; viewers only sign out.
    """
    if not role.is_admin:
        return BlockedScreen(
            title=BLOCKED_TITLE,
            message=reason.message,
            reason=reason,
            actions=[sign_out_action(auth_route)],
            hint=CONTACT_ADMIN_MESSAGE,
        )

    canceled = reason == BlockReason.GRACE_PERIOD_EXPIRED or (
        snapshot is not None and snapshot.is_canceled
    )

    if reason == BlockReason.STATUS_UNAVAILABLE:
        recovery = ScreenAction(label="Tentar novamente", kind="retry")
    elif canceled:
        recovery = ScreenAction(label="Reativar assinatura", kind="navigate", target=plans_route)
    else:
        recovery = ScreenAction(label="Ver planos de assinatura", kind="navigate", target=plans_route)

    hint = None
    if reason == BlockReason.GRACE_PERIOD_EXPIRED:
        hint = f"Seu período de carência de {grace_period_days} dias expirou."
    elif reason == BlockReason.TRIAL_EXPIRED:
        hint = f"Seu trial de {trial_days} dias expirou."

    return BlockedScreen(
        title=BLOCKED_TITLE,
        message=reason.message,
        reason=reason,
        actions=[recovery, sign_out_action(auth_route)],
        hint=hint,
    )


def build_banner(
    snapshot: Optional[SubscriptionStatusSnapshot],
    role: Role,
    plans_route: str = "/subscription",
) -> Optional[SubscriptionBanner]:
    """
    Warning banner for the trial, grace and inactive states.

    Returns None while the snapshot is loading, when nothing needs attention,
    and for master admins or master-managed subscriptions.
    """
    if snapshot is None or snapshot.is_master_managed or role == Role.MASTER_ADMIN:
        return None

    is_admin = role.is_admin
    hint = None if is_admin else CONTACT_ADMIN_MESSAGE

    if snapshot.is_trialing and not snapshot.is_access_blocked:
        cta = ScreenAction(label="Assinar agora", kind="navigate", target=plans_route)
        return SubscriptionBanner(
            variant="trial",
            message=f"Período de trial: {_days(snapshot.trial_days_remaining)}",
            cta=cta if is_admin else None,
            hint=hint,
        )

    if snapshot.is_canceled and not snapshot.is_access_blocked:
        days = snapshot.grace_period_days_remaining or 0
        unit = "dia" if days == 1 else "dias"
        cta = ScreenAction(label="Reativar assinatura", kind="navigate", target=plans_route)
        return SubscriptionBanner(
            variant="grace",
            message=(
                f"Assinatura cancelada: Você tem {days} {unit} para reativar antes do bloqueio."
            ),
            cta=cta if is_admin else None,
            hint=hint,
        )

    if snapshot.is_access_blocked and snapshot.block_reason != BlockReason.STATUS_UNAVAILABLE:
        cta = ScreenAction(label="Ver planos", kind="navigate", target=plans_route)
        return SubscriptionBanner(
            variant="inactive",
            message="Sem assinatura ativa. Assine um plano para desbloquear todos os recursos.",
            cta=cta if is_admin else None,
            hint=hint,
        )

    return None


def build_upgrade_prompt(
    feature_key: str,
    plan_name: str,
    role: Role,
    plans_route: str = "/subscription",
) -> UpgradePrompt:
    """Default fallback rendered in place of a feature the plan lacks."""
    message = f"Esta funcionalidade não está disponível no plano {plan_name or 'atual'}."

    if role.is_admin:
        return UpgradePrompt(
            title=UPGRADE_TITLE,
            message=message,
            feature_key=feature_key,
            cta=ScreenAction(label="Fazer upgrade", kind="navigate", target=plans_route),
        )

    return UpgradePrompt(
        title=UPGRADE_TITLE,
        message=message,
        feature_key=feature_key,
        hint="Entre em contato com o administrador da sua empresa.",
    )


def build_limit_alert(
    label: str,
    current: int,
    limit: int,
    plan_name: str,
    role: Role,
    plans_route: str = "/subscription",
) -> LimitAlert:
    """Advisory alert shown once a quota is used up."""
    message = (
        f"Você atingiu o limite de {limit} {label} do plano {plan_name}. "
        f"({current}/{limit} utilizados)"
    )

    if role.is_admin:
        return LimitAlert(
            title=LIMIT_TITLE,
            message=message,
            current=current,
            limit=limit,
            cta=ScreenAction(label="Fazer upgrade", kind="navigate", target=plans_route),
        )

    return LimitAlert(
        title=LIMIT_TITLE,
        message=message,
        current=current,
        limit=limit,
        hint="Entre em contato com o administrador da sua empresa.",
    )
