"""Payment wizards (fund egress): manual payment and TAS payment.

Both post to the same upstream resource. The developer is picked by name or
by developer id (two views of one selection); the project picked fills in
its project id.
"""

from escrowdesk.services.validation_gate import (
    AMOUNT_REGEX,
    DateAfter,
    MaxLength,
    Pattern,
    Required,
)
from escrowdesk.wizards.definition import (
    EntityMapper,
    FieldMapping,
    WizardDefinition,
    WizardStep,
    WorkflowSpec,
)

_SELECTION_MAPPINGS = [
    FieldMapping("tasReference", "fePaymentRefNumber"),
    FieldMapping("developerName", "buildPartnerDTO.bpName"),
    FieldMapping("developerId", "buildPartnerDTO.bpDeveloperId"),
    FieldMapping("buildPartnerId", "buildPartnerDTO.id", reference=True),
    FieldMapping("projectName", "realEstateAssestDTO.id", reference=True),
    FieldMapping("projectId", "realEstateAssestDTO.reaId"),
]

_SELECTION_RULES = {
    "tasReference": [Required("Payment reference is required"), MaxLength(50)],
    "developerName": [Required("Developer name is required")],
    "developerId": [Required("Developer ID is required")],
    "projectName": [Required("Project is required")],
    "projectId": [Required("Project ID is required")],
}

_DEVELOPER_GROUP = {"developer": {"developerName": "bpName", "developerId": "bpDeveloperId"}}

_SELECTION_DEPENDENCIES = [
    ("developerId", "buildPartnerId", "id"),
    ("projectName", "projectId", "reaId"),
]

_WORKFLOW = WorkflowSpec(reference_type="PAYMENTS", module_name="PAYMENTS")


MANUAL_PAYMENT = WizardDefinition(
    kind="manual_payment",
    resource="fund-egress",
    base_path="/transactions/manual/new",
    steps=[
        WizardStep(
            key="details",
            title="Details",
            label_id="CDL_MP_DETAILS",
            fields=[
                "tasReference",
                "developerName",
                "developerId",
                "projectName",
                "projectId",
                "invoiceRef",
                "invoiceValue",
                "invoiceDate",
                "paymentDate",
                "totalAmountPaid",
            ],
            creates_entity=True,
        ),
        WizardStep(key="documents", title="Documents", label_id="CDL_MP_DOCUMENTS", skip_validation=True),
        WizardStep(key="review", title="Review", label_id="CDL_MP_REVIEW"),
    ],
    mapper=EntityMapper(_SELECTION_MAPPINGS + [
        FieldMapping("invoiceRef", "feInvoiceRefNo"),
        FieldMapping("invoiceValue", "feInvoiceValue"),
        FieldMapping("invoiceDate", "feInvoiceDate"),
        FieldMapping("paymentDate", "fePaymentDate"),
        FieldMapping("totalAmountPaid", "fePaymentAmount"),
        FieldMapping("remarks", "feRemark"),
    ]),
    rules={
        **_SELECTION_RULES,
        "invoiceRef": [MaxLength(50)],
        "invoiceValue": [Pattern(AMOUNT_REGEX, "Enter a valid amount (up to 2 decimals)")],
        "paymentDate": [
            Required("Payment date is required"),
            DateAfter(other="invoiceDate", allow_equal=True, message="Payment date cannot be before the invoice date"),
        ],
        "totalAmountPaid": [
            Required("Amount paid is required"),
            Pattern(AMOUNT_REGEX, "Enter a valid amount (up to 2 decimals)"),
        ],
        "remarks": [MaxLength(500)],
    },
    view_groups=_DEVELOPER_GROUP,
    dependencies=_SELECTION_DEPENDENCIES,
    workflow=_WORKFLOW,
    reference_prefix="PAY",
    reference_field="tasReference",
)


TAS_PAYMENT = WizardDefinition(
    kind="tas_payment",
    resource="fund-egress",
    base_path="/transactions/tas/new",
    steps=[
        WizardStep(
            key="details",
            title="TAS Payment Details",
            label_id="CDL_TAS_DETAILS",
            fields=["tasReference", "developerName", "developerId", "projectName", "projectId", "totalAmountPaid"],
            creates_entity=True,
        ),
        WizardStep(key="review", title="Review", label_id="CDL_TAS_REVIEW"),
    ],
    mapper=EntityMapper(_SELECTION_MAPPINGS + [
        FieldMapping("totalAmountPaid", "fePaymentAmount"),
    ]),
    rules={
        **_SELECTION_RULES,
        "totalAmountPaid": [
            Required("Amount paid is required"),
            Pattern(AMOUNT_REGEX, "Enter a valid amount (up to 2 decimals)"),
        ],
    },
    view_groups=_DEVELOPER_GROUP,
    dependencies=_SELECTION_DEPENDENCIES,
    workflow=_WORKFLOW,
    reference_prefix="TAS",
    reference_field="tasReference",
)
