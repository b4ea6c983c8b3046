"""
Pydantic schemas for API request/response validation.
"""

# Re-export schemas for convenient imports.
from .rule import CompileResponse as CompileResponse
from .rule import RuleSaveRequest as RuleSaveRequest
from .rule import RuleSaveResponse as RuleSaveResponse
from .rule import RuleSourceRequest as RuleSourceRequest
from .rule import StoredRuleListResponse as StoredRuleListResponse
from .rule import StoredRuleResponse as StoredRuleResponse
