"""Wizard catalog — one declarative definition per editor."""

from escrowdesk.wizards.definition import WizardDefinition
from escrowdesk.wizards.guarantee import GUARANTEE
from escrowdesk.wizards.payments import MANUAL_PAYMENT, TAS_PAYMENT
from escrowdesk.wizards.project import PROJECT

WIZARDS: dict[str, WizardDefinition] = {
    definition.kind: definition
    for definition in (GUARANTEE, PROJECT, MANUAL_PAYMENT, TAS_PAYMENT)
}


def get_definition(kind: str) -> WizardDefinition | None:
    return WIZARDS.get(kind)
