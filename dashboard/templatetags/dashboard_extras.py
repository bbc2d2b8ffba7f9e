from decimal import Decimal, InvalidOperation
from urllib.parse import urlencode

from django import template
from django.conf import settings

from dashboard.services import time_ago

register = template.Library()


@register.filter
def peso(value):
    """Format an amount as ₱12,345 (two decimals only when needed)."""
    try:
        amount = Decimal(str(value or 0))
    except (InvalidOperation, ValueError):
        return value
    symbol = getattr(settings, 'FARMAID_CURRENCY_SYMBOL', '₱')
    if amount == amount.to_integral_value():
        return f"{symbol}{amount:,.0f}"
    return f"{symbol}{amount:,.2f}"


@register.filter
def ago(value):
    if not value:
        return ''
    return time_ago(value)


@register.simple_tag(takes_context=True)
def query_with(context, **params):
    """Current query string with `params` overridden; empty values are dropped."""
    request = context.get('request')
    current = request.GET.copy() if request else {}
    merged = {k: v for k, v in current.items()}
    merged.update(params)
    return '?' + urlencode({k: v for k, v in merged.items() if v not in (None, '')})
