"""Static ledger schema.

Every section, sub-account and ledger field role is declared here once. No
other module infers a field's section or whether it is computed from its
name; they look it up in these tables.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple

from recovery_ledger.core.exceptions import ValidationError


class Section(str, Enum):
    """Statutory bases under which demand is raised.

    Section A is the assessed-dues section (7A), Section B the damages
    section (14B) and Section C the interest section (7Q).
    """

    A = "7A"
    B = "14B"
    C = "7Q"


# Allocation priority across sections. Confirm against the governing
# regulation before relying on it for anything other than allocation.
SECTION_PRIORITY: Tuple[Section, ...] = (Section.A, Section.C, Section.B)


class FundRole(str, Enum):
    """Fund category a sub-account tracks."""

    PF_EMPLOYEE = "pf_employee_share"
    PF_EMPLOYER = "pf_employer_share"
    PF = "provident_fund"
    PENSION = "pension_fund"
    EDLI = "edli_fund"
    PF_ADMIN = "pf_admin_charges"
    EDLI_ADMIN = "edli_admin_charges"


class FieldRole(str, Enum):
    """Per-sub-account ledger fields."""

    DEMAND = "demand"
    RECOVERED = "recovered"
    OUTSTANDING = "outstanding"


class Mutability(str, Enum):
    OPERATOR = "operator"
    COMPUTED = "computed"


LEDGER_FIELDS: Dict[FieldRole, Mutability] = {
    FieldRole.DEMAND: Mutability.OPERATOR,
    FieldRole.RECOVERED: Mutability.COMPUTED,
    FieldRole.OUTSTANDING: Mutability.COMPUTED,
}


@dataclass(frozen=True)
class SubAccount:
    """One ledger line within a section."""

    code: str
    section: Section
    role: FundRole
    label: str


SUB_ACCOUNTS: Tuple[SubAccount, ...] = (
    # Section A, waterfall order
    SubAccount("7A_AC_1_EE", Section.A, FundRole.PF_EMPLOYEE, "A/C 1 (EE)"),
    SubAccount("7A_AC_1_ER", Section.A, FundRole.PF_EMPLOYER, "A/C 1 (ER)"),
    SubAccount("7A_AC_10", Section.A, FundRole.PENSION, "A/C 10"),
    SubAccount("7A_AC_21", Section.A, FundRole.EDLI, "A/C 21"),
    SubAccount("7A_AC_2", Section.A, FundRole.PF_ADMIN, "A/C 2"),
    SubAccount("7A_AC_22", Section.A, FundRole.EDLI_ADMIN, "A/C 22"),
    # Section C
    SubAccount("7Q_AC_1", Section.C, FundRole.PF, "A/C 1"),
    SubAccount("7Q_AC_10", Section.C, FundRole.PENSION, "A/C 10"),
    SubAccount("7Q_AC_21", Section.C, FundRole.EDLI, "A/C 21"),
    SubAccount("7Q_AC_2", Section.C, FundRole.PF_ADMIN, "A/C 2"),
    SubAccount("7Q_AC_22", Section.C, FundRole.EDLI_ADMIN, "A/C 22"),
    # Section B
    SubAccount("14B_AC_1", Section.B, FundRole.PF, "A/C 1"),
    SubAccount("14B_AC_10", Section.B, FundRole.PENSION, "A/C 10"),
    SubAccount("14B_AC_21", Section.B, FundRole.EDLI, "A/C 21"),
    SubAccount("14B_AC_2", Section.B, FundRole.PF_ADMIN, "A/C 2"),
    SubAccount("14B_AC_22", Section.B, FundRole.EDLI_ADMIN, "A/C 22"),
)

SUB_ACCOUNTS_BY_CODE: Dict[str, SubAccount] = {acc.code: acc for acc in SUB_ACCOUNTS}

ACCOUNT_CODES: Tuple[str, ...] = tuple(acc.code for acc in SUB_ACCOUNTS)

ALL_SECTIONS: FrozenSet[Section] = frozenset(Section)

_STATUTE_TOKEN = re.compile(r"(?<![0-9A-Z])(7A|7Q|14B)(?![0-9A-Z])")


def accounts_in(section: Section) -> List[SubAccount]:
    """Sub-accounts of a section in waterfall order."""
    return [acc for acc in SUB_ACCOUNTS if acc.section is section]


def waterfall_order(applicable_sections: Iterable[Section]) -> List[SubAccount]:
    """Sub-accounts visited by the allocation waterfall, in priority order."""
    applicable = frozenset(applicable_sections)
    ordered: List[SubAccount] = []
    for section in SECTION_PRIORITY:
        if section in applicable:
            ordered.extend(accounts_in(section))
    return ordered


def get_sub_account(code: str) -> SubAccount:
    """Look up a sub-account by code.

    Raises:
        ValidationError: The code is not part of the ledger schema
    """
    try:
        return SUB_ACCOUNTS_BY_CODE[code]
    except KeyError:
        raise ValidationError(f"Unknown sub-account '{code}'", account=code) from None


def parse_statutory_basis(tag: Optional[str]) -> FrozenSet[Section]:
    """Resolve a statutory-basis ("U/S") tag into the sections it names.

    Tags such as ``"7A"``, ``"14B & 7Q"`` or ``"7A, 14B & 7Q"`` are tokenised
    on section tags. An empty tag, or one naming no known section, applies
    all sections.
    """
    if not tag:
        return ALL_SECTIONS

    sections = frozenset(Section(token) for token in _STATUTE_TOKEN.findall(tag.upper()))
    return sections or ALL_SECTIONS


def ensure_operator_writable(field: FieldRole) -> None:
    """Reject operator writes to computed ledger fields."""
    if LEDGER_FIELDS[field] is not Mutability.OPERATOR:
        raise ValidationError(
            f"Field '{field.value}' is computed by reconciliation and cannot be edited"
        )
