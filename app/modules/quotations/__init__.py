"""
Cotizaciones

- Precios congelados al cotizar; no reservan stock
- Solo una cotización aceptada se convierte en venta POS, y la venta
  descuenta stock por el mismo camino que cualquier venta de mostrador
"""
