"""
Órdenes de compra a proveedores

- PENDING admite agregar líneas; al recibirse, cada línea ingresa stock (IN)
  y fija el costo del repuesto al último precio de compra
- Una orden se recibe una sola vez
"""
