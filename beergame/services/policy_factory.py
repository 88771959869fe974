"""Factory helpers for resolving behaviour profiles and their parameters."""

from __future__ import annotations

from typing import Mapping, Optional

from beergame.schemas.game import ProfileOverride

from .policies import BehaviorProfile, ProfileParams

# Older configurations used "aggressive" for the lean-stock personality.
PROFILE_ALIASES = {
    "aggressive": BehaviorProfile.CALM,
}


def parse_profile(kind: "BehaviorProfile | str") -> BehaviorProfile:
    """Return the :class:`BehaviorProfile` named by ``kind``."""

    if isinstance(kind, BehaviorProfile):
        return kind

    key = (kind or "").strip().lower()
    if key in PROFILE_ALIASES:
        return PROFILE_ALIASES[key]
    try:
        return BehaviorProfile(key)
    except ValueError:
        raise ValueError(f"Unknown behavior profile: {kind}") from None


def resolve_params(
    profile: BehaviorProfile,
    role_key: str,
    overrides: Optional[Mapping[str, ProfileOverride]] = None,
) -> ProfileParams:
    """Merge configured overrides over ``profile``'s defaults.

    Overrides keyed by the profile name apply to every role using that
    profile; overrides keyed by the role id apply to that role only and win
    over the profile-wide ones.
    """

    params = profile.defaults
    if not overrides:
        return params

    for key in (profile.value, role_key):
        override = overrides.get(key)
        if override is None:
            continue
        if isinstance(override, Mapping):
            override = ProfileOverride(**override)
        params = params.merged(override.as_updates())
    return params
