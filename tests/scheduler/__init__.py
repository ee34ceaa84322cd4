"""
Automation engine core tests.

- Store and ledger behaviour (TriggerStore, ExecutionLedger, DedupLedger)
- Registry invariants: one live timer per enabled trigger, none otherwise
- Dispatcher: exactly one record and one event per firing
- Cron parsing and live timers
- End-to-end scenarios through AutomationService
"""
