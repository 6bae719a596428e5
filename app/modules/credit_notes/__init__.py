"""
Notas de crédito (devoluciones parciales de ventas POS)

- Reponen el stock de las líneas devueltas, nunca más de lo vendido
- El reembolso en efectivo sale de la caja abierta como EGRESO
- Cancelar una nota pendiente vuelve a descontar lo repuesto
"""
