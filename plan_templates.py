# plan_templates.py
#
# Industry standard plan templates. Bodies use a light markup understood by
# the exporters: "# " / "## " / "### " headings, "- " bullets, anything else
# is a paragraph line.

from models import PlanTemplate

_DOCUMENT_CONTROL = """## 1. Document Control
- Version: {{version}}
- Last Review: {{lastReviewed}}
- Next Review: {{nextReview}}
- Document Owner: {{planOwner}}
- Document Approver: {{planApprover}}
"""

_ORGANIZATION = """## Organization Details
- Organization: {{organization}}
{{#if industry}}- Industry: {{industry}}
{{/if}}{{#if department}}- Department: {{department}}
{{/if}}- Location: {{location}}
"""

_TESTING = """## Testing & Maintenance
- Testing Frequency: {{testingMaintenance.frequency}}
- Last Test Date: {{testingMaintenance.lastTest}}
- Next Test Date: {{testingMaintenance.nextTest}}
- Test Scope: {{testingMaintenance.scope}}
"""

_COMMUNICATION = """{{#each communicationPlan}}### Stakeholder: {{stakeholder}}
- Communication Method: {{method}}
- Timing/Frequency: {{timing}}
- Owner: {{owner}}
- Message Template: {{message}}
{{/each}}"""

BCP_BODY = (
    """# Business Continuity Plan

"""
    + _DOCUMENT_CONTROL
    + """
## 2. Executive Summary
This Business Continuity Plan (BCP) establishes the framework and procedures for {{organization}} to respond to and recover from disruptive incidents. The plan protects critical business functions, limits operational impact and ensures timely recovery of essential services.
This plan follows ISO 22301:2019 Business Continuity Management Systems. It provides a structured approach to:
- Identify and protect critical business functions
- Define recovery time and point objectives
- Establish clear roles and responsibilities
- Document recovery procedures and strategies
- Ensure effective communication during incidents

"""
    + _ORGANIZATION
    + """
## 4. Plan Scope
{{scope}}

## 5. Team Information
- Plan Owner: {{planOwner}}
- Plan Approver: {{planApprover}}
- Last Approved: {{lastApproved}}
{{#if teamMembers}}Team members: {{teamMembers}}
{{/if}}
## 6. Critical Functions
{{#each criticalFunctions}}### {{name}}
- Priority: {{priority}}
- Recovery Time Objective (RTO): {{rto}} hours
- Recovery Point Objective (RPO): {{rpo}} hours
- Dependencies: {{dependencies}}
{{/each}}
## 7. Recovery Strategies
{{#each recoveryStrategies}}### {{function}}
- Strategy: {{strategy}}
- Required Resources: {{resources}}
- Strategy Owner: {{owner}}
{{/each}}
## 8. Communication Plan
"""
    + _COMMUNICATION
    + """
## 9. Recovery Procedures
{{#each recoveryProcedures}}### Phase: {{phase}}
{{#each tasks}}- Task {{@number}}: {{task}} (owner: {{owner}}, timing: {{timing}})
{{/each}}{{/each}}
"""
    + _TESTING
    + """
## Plan Maintenance
This plan is reviewed and updated:
- Annually as a comprehensive review
- After major organizational changes
- Following significant incidents
- After test exercises that identify gaps
"""
)

CRISIS_BODY = (
    """# Crisis Management Plan

"""
    + _DOCUMENT_CONTROL
    + """
## 2. Purpose
This Crisis Management Plan (CMP) provides a structured framework for {{organization}} to manage and respond to crisis situations. It outlines the processes, roles and responsibilities for crisis identification, escalation, response and recovery.

"""
    + _ORGANIZATION
    + """
## Crisis Management Team
- Primary Contact: {{primaryContact}} ({{primaryEmail}})
- Alternate Contact: {{alternateContact}} ({{alternateEmail}})

## Stakeholder Communication
"""
    + _COMMUNICATION
    + """
"""
    + _TESTING
    + """
## Revision History
- {{version}} / {{lastReviewed}} / Initial version / {{planApprover}}
"""
)

DR_BODY = (
    """# IT Disaster Recovery Plan

"""
    + _DOCUMENT_CONTROL
    + """
## 2. Purpose
This plan describes how {{organization}} restores IT services after a disaster within the recovery objectives agreed with the business.

"""
    + _ORGANIZATION
    + """
## Recovery Objectives
{{#each criticalFunctions}}- {{name}}: RTO {{rto}} hours, RPO {{rpo}} hours (priority {{priority}})
{{/each}}
## Recovery Procedures
{{#each recoveryProcedures}}### Phase: {{phase}}
{{#each tasks}}- Task {{@number}}: {{task}} (owner: {{owner}}, timing: {{timing}})
{{/each}}{{/each}}
"""
    + _TESTING
)

PLAN_TEMPLATES = {
    "bcp": PlanTemplate(
        plan_type="bcp",
        title="Business Continuity Plan",
        title_template="{{organization}} Business Continuity Plan{{#if department}} - {{department}}{{/if}}",
        body_template=BCP_BODY,
    ),
    "crisis": PlanTemplate(
        plan_type="crisis",
        title="Crisis Management Plan",
        title_template="{{organization}} Crisis Management Plan",
        body_template=CRISIS_BODY,
    ),
    "disaster-recovery": PlanTemplate(
        plan_type="disaster-recovery",
        title="IT Disaster Recovery Plan",
        title_template="{{organization}} IT Disaster Recovery Plan",
        body_template=DR_BODY,
    ),
}

# Form fields offered by the plan builder. Dotted ids become nested values.
PLAN_FIELDS = [
    {"id": "version", "label": "Version", "type": "text"},
    {"id": "lastReviewed", "label": "Last Reviewed", "type": "date"},
    {"id": "nextReview", "label": "Next Review", "type": "date"},
    {"id": "planOwner", "label": "Plan Owner", "type": "text"},
    {"id": "planApprover", "label": "Plan Approver", "type": "text"},
    {"id": "lastApproved", "label": "Last Approved", "type": "date"},
    {"id": "location", "label": "Location", "type": "text"},
    {"id": "department", "label": "Department", "type": "text", "scope": "department"},
    {"id": "teamMembers", "label": "Team Members", "type": "text"},
    {"id": "primaryContact", "label": "Primary Contact", "type": "text"},
    {"id": "primaryEmail", "label": "Primary Email", "type": "text"},
    {"id": "alternateContact", "label": "Alternate Contact", "type": "text"},
    {"id": "alternateEmail", "label": "Alternate Email", "type": "text"},
    {"id": "testingMaintenance.frequency", "label": "Testing Frequency", "type": "text"},
    {"id": "testingMaintenance.lastTest", "label": "Last Test Date", "type": "date"},
    {"id": "testingMaintenance.nextTest", "label": "Next Test Date", "type": "date"},
    {"id": "testingMaintenance.scope", "label": "Test Scope", "type": "text"},
    {"id": "scope", "label": "Scope Statement", "type": "textarea"},
]

LIST_FIELDS = {
    "criticalFunctions": ["name", "priority", "rto", "rpo", "dependencies"],
    "recoveryStrategies": ["function", "strategy", "resources", "owner"],
    "communicationPlan": ["stakeholder", "method", "timing", "owner", "message"],
}

# recoveryProcedures rows are grouped by phase into {"phase", "tasks": [...]}.
PROCEDURE_COLUMNS = ["phase", "task", "owner", "timing"]
