"""Built-in workflow definitions.

The phases, task ordering and due-date offsets mirror the processes the
marketplace runs for dissolutions, legal name changes and license discovery.
Jurisdiction specific legal content is not modelled here.
"""

from __future__ import annotations

from ..contracts import WorkflowType
from .models import DeadlineRule, PhaseDefinition, TaskDefinition, WorkflowDefinition

DISSOLUTION = WorkflowDefinition(
    workflow_type=WorkflowType.DISSOLUTION,
    title="Business Dissolution",
    phases=(
        PhaseDefinition(
            phase_key="decision",
            order=1,
            title="Decision",
            tasks=(
                TaskDefinition(
                    task_key="member_approval",
                    title="Obtain Member/Shareholder Approval",
                    is_critical=True,
                    deadline_rule=DeadlineRule.after_start(7),
                ),
            ),
        ),
        PhaseDefinition(
            phase_key="approval",
            order=2,
            title="Approval",
            tasks=(
                TaskDefinition(
                    task_key="board_resolution",
                    title="Board Resolution",
                    depends_on=("member_approval",),
                    deadline_rule=DeadlineRule.after_start(14),
                ),
            ),
        ),
        PhaseDefinition(
            phase_key="filing",
            order=3,
            title="Filing",
            tasks=(
                TaskDefinition(
                    task_key="state_filing",
                    title="File Articles of Dissolution",
                    depends_on=("member_approval", "board_resolution"),
                    is_critical=True,
                    deadline_rule=DeadlineRule.after_start(28),
                ),
                TaskDefinition(
                    task_key="final_tax_return",
                    title="File Final Tax Returns",
                    is_critical=True,
                    deadline_rule=DeadlineRule.after_start(120),
                ),
                TaskDefinition(
                    task_key="form_966",
                    title="File Form 966",
                    depends_on=("state_filing",),
                    deadline_rule=DeadlineRule.after_task("state_filing", 30),
                ),
            ),
        ),
        PhaseDefinition(
            phase_key="wind_down",
            order=4,
            title="Wind-down",
            tasks=(
                TaskDefinition(
                    task_key="asset_distribution",
                    title="Distribute Assets",
                    depends_on=("state_filing",),
                    deadline_rule=DeadlineRule.after_start(90),
                ),
                TaskDefinition(
                    task_key="debt_settlement",
                    title="Settle Outstanding Debts",
                    depends_on=("state_filing",),
                    is_critical=True,
                    deadline_rule=DeadlineRule.after_start(60),
                ),
                TaskDefinition(
                    task_key="license_cancellation",
                    title="Cancel Business Licenses",
                    depends_on=("state_filing",),
                    deadline_rule=DeadlineRule.after_start(56),
                ),
                TaskDefinition(
                    task_key="contract_termination",
                    title="Terminate Contracts",
                    deadline_rule=DeadlineRule.after_start(60),
                ),
                TaskDefinition(
                    task_key="employee_termination",
                    title="Handle Employee Terminations",
                    deadline_rule=DeadlineRule.after_start(42),
                ),
            ),
        ),
        PhaseDefinition(
            phase_key="closure",
            order=5,
            title="Closure",
            tasks=(
                TaskDefinition(
                    task_key="ein_cancellation",
                    title="Cancel EIN",
                    depends_on=("final_tax_return", "form_966"),
                    deadline_rule=DeadlineRule.after_start(180),
                ),
                TaskDefinition(
                    task_key="record_retention",
                    title="Archive Business Records",
                    deadline_rule=DeadlineRule.after_start(150),
                ),
            ),
        ),
    ),
)

NAME_CHANGE = WorkflowDefinition(
    workflow_type=WorkflowType.NAME_CHANGE,
    title="Legal Name Change",
    phases=(
        PhaseDefinition(
            phase_key="internal_approval",
            order=1,
            title="Internal Approval",
            tasks=(
                TaskDefinition(
                    task_key="approve_resolution",
                    title="Generate and Approve Resolution",
                    deadline_rule=DeadlineRule.after_start(7),
                ),
            ),
        ),
        PhaseDefinition(
            phase_key="name_availability",
            order=2,
            title="Name Availability",
            tasks=(
                TaskDefinition(
                    task_key="check_name_availability",
                    title="Verify Name Availability",
                    depends_on=("approve_resolution",),
                    deadline_rule=DeadlineRule.after_start(9),
                    resubmission_rule=DeadlineRule.after_rejection(14),
                ),
            ),
        ),
        PhaseDefinition(
            phase_key="state_filing",
            order=3,
            title="State Filing",
            tasks=(
                TaskDefinition(
                    task_key="file_state_amendment",
                    title="File State Amendment",
                    depends_on=("check_name_availability",),
                    is_critical=True,
                    deadline_rule=DeadlineRule.after_start(14),
                ),
            ),
        ),
        PhaseDefinition(
            phase_key="irs_notification",
            order=4,
            title="IRS Notification",
            tasks=(
                TaskDefinition(
                    task_key="notify_irs",
                    title="Notify IRS of Name Change",
                    depends_on=("file_state_amendment",),
                    deadline_rule=DeadlineRule.after_start(21),
                ),
            ),
        ),
        PhaseDefinition(
            phase_key="license_updates",
            order=5,
            title="License Updates",
            tasks=(
                TaskDefinition(
                    task_key="update_licenses",
                    title="Update Business Licenses",
                    depends_on=("notify_irs",),
                    deadline_rule=DeadlineRule.after_task("file_state_amendment", 30),
                ),
            ),
        ),
    ),
)

LICENSE_DISCOVERY = WorkflowDefinition(
    workflow_type=WorkflowType.LICENSE_DISCOVERY,
    title="Business License Discovery",
    phases=(
        PhaseDefinition(
            phase_key="profile",
            order=1,
            title="Business Profile",
            tasks=(TaskDefinition(task_key="business_profile", title="Complete Business Profile"),),
        ),
        PhaseDefinition(
            phase_key="discovery",
            order=2,
            title="Requirement Discovery",
            tasks=(
                TaskDefinition(
                    task_key="requirement_discovery",
                    title="Discover License Requirements",
                    depends_on=("business_profile",),
                ),
            ),
        ),
        PhaseDefinition(
            phase_key="applications",
            order=3,
            title="Applications",
            tasks=(
                TaskDefinition(
                    task_key="submit_applications",
                    title="Submit License Applications",
                    depends_on=("requirement_discovery",),
                    is_critical=True,
                    deadline_rule=DeadlineRule.after_task("requirement_discovery", 30),
                ),
            ),
        ),
        PhaseDefinition(
            phase_key="verification",
            order=4,
            title="Verification",
            tasks=(
                TaskDefinition(
                    task_key="verify_registration",
                    title="Verify Business Registration",
                    depends_on=("submit_applications",),
                    deadline_rule=DeadlineRule.after_task("submit_applications", 90),
                ),
            ),
        ),
        PhaseDefinition(
            phase_key="monitoring",
            order=5,
            title="Renewal Monitoring",
            tasks=(
                TaskDefinition(
                    task_key="renewal_tracking",
                    title="Schedule Renewal Reminders",
                    depends_on=("verify_registration",),
                ),
            ),
        ),
    ),
)

BUILTIN_DEFINITIONS: tuple[WorkflowDefinition, ...] = (
    DISSOLUTION,
    NAME_CHANGE,
    LICENSE_DISCOVERY,
)

__all__ = ["DISSOLUTION", "NAME_CHANGE", "LICENSE_DISCOVERY", "BUILTIN_DEFINITIONS"]
