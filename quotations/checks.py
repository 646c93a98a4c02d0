from django.core.checks import Error, register

from .constants.charges import ANCILLARY_CHARGE_RULES
from .services.calculation import validate_rule_set


@register()
def check_ancillary_charge_rules(app_configs=None, rules=ANCILLARY_CHARGE_RULES, **kwargs):
    return [
        Error(message, hint="Fix the ancillary charge rules in quotations.constants.charges.", id="quotations.E001")
        for message in validate_rule_set(rules)
    ]
