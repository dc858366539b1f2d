"""Guarantee (surety bond) wizard: details → documents → review."""

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

DETAIL_FIELDS = [
    "guaranteeRefNo",
    "guaranteeType",
    "guaranteeDate",
    "projectCif",
    "projectName",
    "developerName",
    "guaranteeAmount",
    "issuerBank",
    "guaranteeExpirationDate",
    "noOfAmendments",
]

GUARANTEE = WizardDefinition(
    kind="guarantee",
    resource="surety-bond",
    base_path="/guarantee/new",
    steps=[
        WizardStep(
            key="details",
            title="Guarantee Details",
            label_id="CDL_SB_DETAILS",
            fields=DETAIL_FIELDS,
            creates_entity=True,
        ),
        WizardStep(
            key="documents",
            title="Documents",
            label_id="CDL_SB_DOCUMENTS",
            skip_validation=True,
        ),
        WizardStep(key="review", title="Review", label_id="CDL_SB_REVIEW"),
    ],
    mapper=EntityMapper([
        FieldMapping("guaranteeRefNo", "suretyBondReferenceNumber"),
        FieldMapping("guaranteeType", "suretyBondTypeDTO.id", reference=True),
        FieldMapping("guaranteeDate", "suretyBondDate"),
        FieldMapping("projectName", "realEstateAssestDTO.id", reference=True),
        FieldMapping("projectCif", "realEstateAssestDTO.reaCif"),
        FieldMapping("developerName", "buildPartnerDTO.id", reference=True),
        FieldMapping("openEndedGuarantee", "suretyBondOpenEnded"),
        FieldMapping("noOfAmendments", "suretyBondNoOfAmendment"),
        FieldMapping("guaranteeExpirationDate", "suretyBondExpirationDate"),
        FieldMapping("guaranteeAmount", "suretyBondAmount"),
        FieldMapping("issuerBank", "issuerBankDTO.id", reference=True),
        FieldMapping("suretyBondNewReadingAmendment", "suretyBondNewReadingAmendment"),
    ]),
    rules={
        "guaranteeRefNo": [Required("Guarantee reference number is required"), MaxLength(50)],
        "guaranteeType": [Required("Guarantee type is required")],
        "guaranteeDate": [Required("Guarantee date is required")],
        "projectName": [Required("Project is required")],
        "projectCif": [Required("Project CIF is required")],
        "developerName": [Required("Developer is required")],
        "guaranteeAmount": [
            Required("Guarantee amount is required"),
            Pattern(AMOUNT_REGEX, "Enter a valid amount (up to 2 decimals)"),
        ],
        "issuerBank": [Required("Issuer bank is required")],
        "guaranteeExpirationDate": [
            DateAfter(
                other="guaranteeDate",
                message="Expiration date must be after the guarantee date",
            ),
        ],
        "noOfAmendments": [Pattern(r"^\d{1,3}$", "Number of amendments must be a whole number")],
    },
    dependencies=[
        ("projectName", "projectCif", "reaCif"),
        ("projectName", "projectCompletionDate", "reaCompletionDate"),
    ],
    workflow=WorkflowSpec(reference_type="SURETY_BOND", module_name="SURETY_BOND"),
    reference_prefix="GUA",
    reference_field="guaranteeRefNo",
)
