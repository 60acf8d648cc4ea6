"""User directory -- accounts, roles, and the manager/staff hierarchy.

Provides the persistence model, Pydantic schemas, repository, and avatar
storage used by the account endpoints and by the meeting lifecycle engine
when it validates rosters and resolves action-item assignees.
"""
