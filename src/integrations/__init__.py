"""
External collaborators that publish decoded emails.

- github_issues: creates a GitHub issue per email
- discord_webhook: relays the email to a Discord channel
"""
