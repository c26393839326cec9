"""Group registry - named, rule-bound peer pools"""

import asyncio
import dataclasses
import logging
import math
import threading
import uuid
from collections import Counter, defaultdict
from typing import Any, Dict, List, Mapping, Optional, Sequence

from peer_trust.domain.exceptions import (
    InsufficientTrustError,
    LimitExceededError,
    NotFoundError,
    PeerNetworkError,
    ValidationError,
    VipRequiredError,
)
from peer_trust.domain.models import CustomerProfile, GroupRules, GroupType, PeerGroup, clamp_score
from peer_trust.domain.ports import ProfileProvider
from peer_trust.domain.relationships import RelationshipStore

logger = logging.getLogger(__name__)

# Creator trust score required to create a group of each type
CREATOR_THRESHOLDS: Dict[GroupType, float] = {GroupType.VIP_NETWORK: 90.0}
DEFAULT_CREATOR_THRESHOLD = 70.0

# Per-type overrides on top of the base GroupRules
RULE_TEMPLATES: Dict[GroupType, Dict[str, Any]] = {
    GroupType.TRUST_CIRCLE: {"min_trust_score": 80.0, "max_members": 20},
    GroupType.VIP_NETWORK: {"min_trust_score": 90.0, "max_members": 30, "vip_only": True},
    GroupType.PAYMENT_CIRCLE: {"min_trust_score": 60.0, "max_members": 100},
    GroupType.GEOGRAPHIC: {"min_trust_score": 65.0, "max_members": 75},
    GroupType.INTEREST_BASED: {"min_trust_score": 70.0, "max_members": 40},
}

# Share of members that must use a method for it to count as common
COMMON_METHOD_SHARE = 0.3

# Auto-grouping
AUTO_GROUP_MIN_SIZE = 5
AUTO_GEOGRAPHIC_SIZE = 20
AUTO_PAYMENT_SIZE = 15
AUTO_FREQUENCY_SIZE = 25
HIGH_FREQUENCY_TRANSACTIONS = 50

RULE_FIELDS = frozenset(f.name for f in dataclasses.fields(GroupRules))


def _coerce_rule(name: str, value: Any, default: Any) -> Any:
    """Check an override against the type of the field's default"""
    if isinstance(default, bool):
        if isinstance(value, bool):
            return value
    elif isinstance(default, int):
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    elif isinstance(default, float):
        if isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value):
            return float(value)
    elif isinstance(default, list):
        if isinstance(value, (list, tuple)) and all(isinstance(item, str) for item in value):
            return list(value)
    raise ValidationError(f"Invalid value for group rule {name}: {value!r}")


def resolve_rules(group_type: GroupType, overrides: Optional[Mapping[str, Any]] = None) -> GroupRules:
    """Merge base rules, the type template and caller overrides"""
    overrides = dict(overrides or {})
    unknown = set(overrides) - RULE_FIELDS
    if unknown:
        raise ValidationError(f"Unknown group rule(s): {', '.join(sorted(unknown))}")

    rules = dataclasses.replace(GroupRules(), **RULE_TEMPLATES.get(group_type, {}))
    checked = {name: _coerce_rule(name, value, getattr(rules, name)) for name, value in overrides.items()}
    rules = dataclasses.replace(rules, **checked)
    if rules.max_members < 2:
        raise ValidationError("max_members must be at least 2")
    if rules.min_amount > rules.max_amount:
        raise ValidationError("min_amount must not exceed max_amount")
    return rules


def creator_threshold(group_type: GroupType) -> float:
    return CREATOR_THRESHOLDS.get(group_type, DEFAULT_CREATOR_THRESHOLD)


def common_methods(profiles: Sequence[CustomerProfile]) -> List[str]:
    """Payment methods used by at least 30% of the given profiles"""
    if not profiles:
        return []
    counts = Counter(method for p in profiles for method in set(p.payment_methods))
    threshold = len(profiles) * COMMON_METHOD_SHARE
    return sorted(method for method, count in counts.items() if count >= threshold)


class GroupRegistry:
    """In-memory registry of peer groups and their membership"""

    def __init__(
        self,
        profiles: ProfileProvider,
        relationships: RelationshipStore,
        vip_min_tier: int = 3,
    ):
        self.profiles = profiles
        self.relationships = relationships
        self.vip_min_tier = vip_min_tier
        self._groups: Dict[str, PeerGroup] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._groups)

    def all(self) -> List[PeerGroup]:
        return list(self._groups.values())

    def get(self, group_id: str) -> PeerGroup:
        group = self._groups.get(group_id)
        if group is None:
            raise NotFoundError(f"Group {group_id} not found")
        return group

    def find_by_name(self, name: str) -> Optional[PeerGroup]:
        for group in list(self._groups.values()):
            if group.name == name:
                return group
        return None

    def members_of(self, group_id: str) -> List[str]:
        return list(self.get(group_id).members)

    def groups_of(self, customer_id: str) -> List[PeerGroup]:
        return [g for g in list(self._groups.values()) if g.has_member(customer_id)]

    def shared_groups(self, customer_a: str, customer_b: str) -> List[PeerGroup]:
        return [g for g in self.groups_of(customer_a) if g.has_member(customer_b)]

    async def create(
        self,
        creator_id: str,
        name: str,
        group_type: GroupType,
        initial_members: Sequence[str] = (),
        rule_overrides: Optional[Mapping[str, Any]] = None,
    ) -> PeerGroup:
        """
        Create a group after validating the creator and every initial member.

        Raises:
            NotFoundError: Creator or a member has no profile
            InsufficientTrustError: Creator or member trust below threshold
            VipRequiredError: vip_only group and member below VIP tier
            LimitExceededError: More members than rules.max_members
            ValidationError: Empty name or unknown rule override
        """
        if not name or not name.strip():
            raise ValidationError("Group name is required")
        group_type = GroupType(group_type)

        creator = await self._require_profile(creator_id)
        required = creator_threshold(group_type)
        if creator.trust_score < required:
            raise InsufficientTrustError(creator_id, creator.trust_score, required)

        rules = resolve_rules(group_type, rule_overrides)
        members = list(dict.fromkeys([creator_id, *initial_members]))
        if len(members) > rules.max_members:
            raise LimitExceededError(
                "max_members",
                f"Group allows at most {rules.max_members} members, got {len(members)}",
            )

        others = await asyncio.gather(*(self._require_profile(m) for m in members[1:]))
        if rules.vip_only:
            self._check_vip(creator)
        for profile in others:
            self._check_admission(profile, rules)

        group = PeerGroup(
            id=f"peer_group_{uuid.uuid4().hex[:12]}",
            name=name.strip(),
            type=group_type,
            rules=rules,
            creator_id=creator_id,
            members=members,
            common_payment_methods=common_methods([creator, *others]),
        )
        with self._lock:
            self._groups[group.id] = group
        seeded = self.relationships.seed_pairs(members)

        logger.info(
            "Peer group created",
            extra={
                "step": "group_created",
                "group_id": group.id,
                "group_type": group_type.value,
                "member_count": len(members),
                "relationships_seeded": seeded,
            },
        )
        return group

    async def add_member(self, group_id: str, customer_id: str) -> PeerGroup:
        """Admit a customer under the group's current rules"""
        group = self.get(group_id)
        if group.has_member(customer_id):
            return group

        profile = await self._require_profile(customer_id)
        self._check_admission(profile, group.rules)

        with self._lock:
            if group.has_member(customer_id):
                return group
            if group.member_count >= group.rules.max_members:
                raise LimitExceededError(
                    "max_members", f"Group {group_id} is full ({group.rules.max_members} members)"
                )
            group.members.append(customer_id)
        self.relationships.seed_pairs(group.members)
        return group

    def remove_member(self, group_id: str, customer_id: str) -> PeerGroup:
        group = self.get(group_id)
        with self._lock:
            if customer_id not in group.members:
                raise NotFoundError(f"Customer {customer_id} is not a member of {group_id}")
            group.members.remove(customer_id)
        return group

    def record_outcome(self, group_id: str, amount: float, success: bool) -> PeerGroup:
        """Update running success rate, volume and trust for the group"""
        with self._lock:
            group = self.get(group_id)
            group.total_transactions += 1
            group.total_volume += amount
            previous = group.success_rate * (group.total_transactions - 1)
            if success:
                group.success_rate = (previous + 1) / group.total_transactions
                group.trust_score = clamp_score(group.trust_score + 1)
            else:
                group.success_rate = previous / group.total_transactions
                group.trust_score = clamp_score(group.trust_score - 2)
        return group

    async def auto_form(self, profiles: Sequence[CustomerProfile]) -> List[PeerGroup]:
        """
        Cluster customers into groups by region, payment method and frequency.

        Each cluster is filtered to profiles eligible under its type's default
        rules; clusters smaller than five, or whose name already exists, are
        skipped. A failing cluster does not stop the pass.
        """
        by_region: Dict[str, List[CustomerProfile]] = defaultdict(list)
        by_method: Dict[str, List[CustomerProfile]] = defaultdict(list)
        high_frequency: List[CustomerProfile] = []

        for profile in profiles:
            if profile.region:
                by_region[profile.region].append(profile)
            if profile.payment_methods:
                by_method[profile.payment_methods[0]].append(profile)
            if profile.total_transactions > HIGH_FREQUENCY_TRANSACTIONS:
                high_frequency.append(profile)

        clusters = [
            (f"{region} Network", GroupType.GEOGRAPHIC, members, AUTO_GEOGRAPHIC_SIZE)
            for region, members in sorted(by_region.items())
        ]
        clusters += [
            (f"{method.upper()} Users", GroupType.PAYMENT_CIRCLE, members, AUTO_PAYMENT_SIZE)
            for method, members in sorted(by_method.items())
        ]
        clusters.append(("Active Traders", GroupType.INTEREST_BASED, high_frequency, AUTO_FREQUENCY_SIZE))

        created = []
        for name, group_type, members, size in clusters:
            group = await self._form_cluster(name, group_type, members, size)
            if group is not None:
                created.append(group)
        return created

    async def _form_cluster(
        self,
        name: str,
        group_type: GroupType,
        members: List[CustomerProfile],
        size: int,
    ) -> Optional[PeerGroup]:
        if self.find_by_name(name) is not None:
            return None

        rules = resolve_rules(group_type)
        eligible = [
            p for p in members
            if p.trust_score >= max(rules.min_trust_score, creator_threshold(group_type))
        ]
        eligible.sort(key=lambda p: p.trust_score, reverse=True)
        eligible = eligible[:size]
        if len(eligible) < AUTO_GROUP_MIN_SIZE:
            return None

        try:
            return await self.create(
                eligible[0].customer_id,
                name,
                group_type,
                [p.customer_id for p in eligible[1:]],
            )
        except PeerNetworkError as e:
            logger.warning(f"Auto-creation of {name} group failed: {e}", extra={"step": "auto_form"})
            return None

    async def _require_profile(self, customer_id: str) -> CustomerProfile:
        profile = await self.profiles.get_profile(customer_id)
        if profile is None:
            raise NotFoundError(f"Customer {customer_id} not found")
        return profile

    def _check_admission(self, profile: CustomerProfile, rules: GroupRules) -> None:
        if profile.trust_score < rules.min_trust_score:
            raise InsufficientTrustError(profile.customer_id, profile.trust_score, rules.min_trust_score)
        if rules.vip_only:
            self._check_vip(profile)

    def _check_vip(self, profile: CustomerProfile) -> None:
        if profile.vip_tier < self.vip_min_tier:
            raise VipRequiredError(profile.customer_id, profile.vip_tier, self.vip_min_tier)
