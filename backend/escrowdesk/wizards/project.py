"""Project (build partner asset) wizard with its installment payment plan.

Steps: asset details (creates the record) → documents → financial →
payment plan (rows edited in place, leaving blocked while any are unsaved)
→ review (submits the maker/checker request).
"""

from escrowdesk.config import settings
from escrowdesk.services.collection import RowFieldSpec, RowMapper, RowSchema
from escrowdesk.services.validation_gate import (
    AMOUNT_REGEX,
    DateAfter,
    MaxLength,
    NumericRange,
    Pattern,
    Required,
)
from escrowdesk.wizards.definition import (
    CollectionSpec,
    EntityMapper,
    FieldMapping,
    WizardDefinition,
    WizardStep,
    WorkflowSpec,
)

PAYMENT_PLAN = CollectionSpec(
    name="payment_plan",
    label="installment",
    title="Payment plan",
    schema=RowSchema(
        fields=[
            RowFieldSpec(
                "installmentPercentage",
                "Installment percentage",
                maximum=settings.percentage_ceiling,
                max_length=settings.row_value_max_length,
            ),
            RowFieldSpec(
                "projectCompletionPercentage",
                "Project completion percentage",
                maximum=settings.percentage_ceiling,
                max_length=settings.row_value_max_length,
            ),
        ],
        ceiling=settings.percentage_ceiling,
    ),
    mapper=RowMapper(
        field_keys={
            "installmentPercentage": "reappInstallmentPercentage",
            "projectCompletionPercentage": "reappProjectCompletionPercentage",
        },
        sequence_key="reappInstallmentNumber",
    ),
    resource="real-estate-assest-payment-plan",
    parent_field="realEstateAssestDTO",
    parent_filter="realEstateAssestId.equals",
)

PROJECT = WizardDefinition(
    kind="project",
    resource="real-estate-assests",
    base_path="/build-partner-assets",
    steps=[
        WizardStep(
            key="details",
            title="Build Partner Asset Details",
            label_id="CDL_BPA_DETAILS",
            fields=[
                "reaId",
                "developerName",
                "developerId",
                "reaName",
                "reaLocation",
                "reaCif",
                "reaStartDate",
                "reaCompletionDate",
            ],
            creates_entity=True,
        ),
        WizardStep(key="documents", title="Documents", label_id="CDL_BPA_DOCUMENTS", skip_validation=True),
        WizardStep(
            key="financial",
            title="Financial",
            label_id="CDL_BPA_FINANCIAL",
            fields=["reaConstructionCost", "reaTotalUnits", "reaPercentComplete"],
            persists=True,
        ),
        WizardStep(
            key="payment_plan",
            title="Payment Plan",
            label_id="CDL_BPA_PAYMENT_PLAN",
            guarded_collection="payment_plan",
        ),
        WizardStep(key="review", title="Review", label_id="CDL_BPA_REVIEW"),
    ],
    mapper=EntityMapper([
        FieldMapping("reaId", "reaId"),
        FieldMapping("developerName", "buildPartnerDTO.bpName"),
        FieldMapping("developerId", "buildPartnerDTO.bpDeveloperId"),
        FieldMapping("buildPartnerId", "buildPartnerDTO.id", reference=True),
        FieldMapping("reaName", "reaName"),
        FieldMapping("reaLocation", "reaLocation"),
        FieldMapping("reaCif", "reaCif"),
        FieldMapping("reaStartDate", "reaStartDate"),
        FieldMapping("reaCompletionDate", "reaCompletionDate"),
        FieldMapping("reaConstructionCost", "reaConstructionCost"),
        FieldMapping("reaTotalUnits", "reaNoOfUnits"),
        FieldMapping("reaPercentComplete", "reaPercentComplete"),
    ]),
    rules={
        "reaId": [Required("Project ID is required"), MaxLength(30)],
        "developerName": [Required("Developer is required")],
        "developerId": [Required("Developer ID is required")],
        "reaName": [Required("Project name is required"), MaxLength(100)],
        "reaLocation": [Required("Location is required"), MaxLength(200)],
        "reaCif": [Required("CIF is required")],
        "reaStartDate": [Required("Start date is required")],
        "reaCompletionDate": [
            Required("Completion date is required"),
            DateAfter(other="reaStartDate", message="Completion date must be after the start date"),
        ],
        "reaConstructionCost": [
            Required("Construction cost is required"),
            Pattern(AMOUNT_REGEX, "Enter a valid amount (up to 2 decimals)"),
        ],
        "reaTotalUnits": [Pattern(r"^\d{1,6}$", "Number of units must be a whole number")],
        "reaPercentComplete": [NumericRange(0, 100)],
    },
    view_groups={
        "developer": {"developerName": "bpName", "developerId": "bpDeveloperId"},
    },
    dependencies=[
        ("developerId", "buildPartnerId", "id"),
        ("developerId", "reaCif", "bpCifrera"),
    ],
    collections=[PAYMENT_PLAN],
    workflow=WorkflowSpec(reference_type="BUILD_PARTNER_ASSET", module_name="BUILD_PARTNER_ASSET"),
    reference_prefix="PRJ",
    reference_field="reaId",
)
