"""
Sincronización bidireccional Airtable <-> PostgreSQL.

- Pull inicial (completo o incremental) de cada provider, en orden de dependencias.
- Deltas en tiempo real: webhook de Airtable + lectura de payloads por cursor.
- Escrituras Postgres -> Airtable -> Postgres (RemoteWriteService / RemoteProvider).

Objetivos de diseño:
- Idempotencia: UPSERT que solo toca filas con valores distintos.
- Esquema explícito y tipado en PostgreSQL, validado contra los metadatos de Airtable al arrancar.
- Un record inválido se excluye y se reporta; el resto sigue.
"""
