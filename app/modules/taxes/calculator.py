"""
Cálculo de impuestos con aritmética decimal.

Regla única de redondeo para todo el sistema: ROUND_HALF_UP a 2 decimales
(redondeo comercial). Ventas POS y facturas usan estas mismas funciones.
"""

from decimal import Decimal, ROUND_HALF_UP

CENT = Decimal("0.01")


def round_money(amount) -> Decimal:
    """Redondear un monto a centavos"""
    return Decimal(str(amount)).quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_tax_amount(base_amount: Decimal, tax_rate: Decimal) -> Decimal:
    """
    Calcular el valor del impuesto

    Args:
        base_amount: Valor base
        tax_rate: Tasa en porcentaje (ej. 12 para 12%)

    Returns:
        Valor del impuesto redondeado
    """
    tax_amount = Decimal(str(base_amount)) * Decimal(str(tax_rate)) / Decimal("100")
    return tax_amount.quantize(CENT, rounding=ROUND_HALF_UP)


def calculate_totals(subtotal: Decimal, tax_rate: Decimal, discount: Decimal = Decimal("0")) -> dict:
    """Subtotal, impuesto y total (el descuento se resta después del impuesto)"""
    subtotal = round_money(subtotal)
    tax_amount = calculate_tax_amount(subtotal, tax_rate)
    total = subtotal + tax_amount - round_money(discount)
    return {"subtotal": subtotal, "tax_amount": tax_amount, "total": total}
