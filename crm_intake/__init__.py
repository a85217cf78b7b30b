"""
CRM email intake pipeline.

Turns unstructured inbound email into CRM records:
- Normalizes message bodies and unwraps forwarded messages
- Extracts dates, amounts, action items and contacts
- Classifies sentiment, urgency and category
- Routes each message to an organization and deal
- Creates notes and follow-up tasks, with a per-message audit trail
"""
