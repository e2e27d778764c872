"""
Contact Form App

Handles public contact form submissions for the business website:
- Server-side validation and sanitization (fr / en / nl)
- Cloudflare Turnstile verification, spam heuristics, per-address rate limit
- Operator notification and sender confirmation emails
- Append-only submission log
- Client submission guard (Python and browser)
"""
