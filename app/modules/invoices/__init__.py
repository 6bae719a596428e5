"""
Módulo de Facturación (Invoices) - Taller360

- Facturas generadas desde tickets resueltos o cerrados
- Pagos parciales con prevención de sobrepago
- Pagos en efectivo reflejados en la caja abierta
- Marcado periódico de facturas vencidas (Celery beat)

Tablas principales:
- invoices: facturas de servicio (una por ticket)
- payments: pagos de facturas
"""
