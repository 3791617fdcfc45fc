"""
Core engine for producing direct links.

The `ShareLinkService` is the facade callers use. It borrows sessions from the
`CredentialPool`, runs each request through the `TransferOrchestrator`, and
keeps the pool healthy with the `MaintenanceScheduler`.
"""
