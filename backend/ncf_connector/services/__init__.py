"""
Connector services.

- ShopLifecycleService: install / uninstall / redact transitions
- SubscriptionOrchestrator: Shopify Billing create and confirm
- PlanReconciler: effective plan from NCF Manager
- TokenSyncRelay: access token hand-off to NCF Manager
- WebhookDispatcher: topic routing for Shopify webhooks
"""
