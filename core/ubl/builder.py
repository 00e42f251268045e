"""UBL 2.1 (TR1.2) e-Archive invoice builder.

Receiving validators check element order, not just presence, so the
document is emitted as a fixed sequence of sections:

    UBLExtensions
    UBLVersionID, CustomizationID, ProfileID, ID, CopyIndicator, UUID,
    IssueDate, IssueTime, InvoiceTypeCode, Note*, DocumentCurrencyCode,
    LineCountNumeric
    AdditionalDocumentReference?   (internet sale)
    Signature
    AccountingSupplierParty
    AccountingCustomerParty
    Delivery?
    TaxTotal
    LegalMonetaryTotal
    InvoiceLine+

and every InvoiceLine as ID, InvoicedQuantity, LineExtensionAmount,
TaxTotal, Item, Price.
"""

import hashlib
import xml.etree.ElementTree as ET
from typing import Dict, Optional

from core.mapping.fallbacks import DEFAULT_FALLBACKS, FallbackPolicy
from core.mapping.money import format_money, format_rate
from core.models.invoice import InvoiceLine, InvoiceParty, InvoicePayload

INVOICE_NS = "urn:oasis:names:specification:ubl:schema:xsd:Invoice-2"
CAC_NS = "urn:oasis:names:specification:ubl:schema:xsd:CommonAggregateComponents-2"
CBC_NS = "urn:oasis:names:specification:ubl:schema:xsd:CommonBasicComponents-2"
EXT_NS = "urn:oasis:names:specification:ubl:schema:xsd:CommonExtensionComponents-2"
SIGNATURE_STUB_NS = "http://tempuri.org"

NAMESPACES = {
    "": INVOICE_NS,
    "cac": CAC_NS,
    "cbc": CBC_NS,
    "ext": EXT_NS,
    "n1": SIGNATURE_STUB_NS,
}

for _prefix, _uri in NAMESPACES.items():
    ET.register_namespace(_prefix, _uri)

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>\n'

UBL_VERSION = "2.1"
CUSTOMIZATION_ID = "TR1.2"


def _cac(name: str) -> str:
    return f"{{{CAC_NS}}}{name}"


def _cbc(name: str) -> str:
    return f"{{{CBC_NS}}}{name}"


def internet_sale_reference_id(invoice_uuid: str) -> str:
    """13-digit reference id derived from the invoice UUID."""
    digest = int(hashlib.sha256(invoice_uuid.encode("utf-8")).hexdigest(), 16)
    return str(1_000_000_000_000 + digest % 9_000_000_000_000)


class UBLInvoiceBuilder:
    """Builds e-Archive invoice XML from an ``InvoicePayload``.

    Usage:
        xml = UBLInvoiceBuilder().build(payload)
    """

    def __init__(self, policy: FallbackPolicy = DEFAULT_FALLBACKS, country_name: str = "Turkiye"):
        self.policy = policy
        self.country_name = country_name
        self._currency = "TRY"

    # ------------------------------------------------------------------
    # Element helpers
    # ------------------------------------------------------------------

    def _cbc(self, parent: ET.Element, name: str, value, attrib: Optional[Dict[str, str]] = None) -> ET.Element:
        element = ET.SubElement(parent, _cbc(name), attrib or {})
        element.text = "" if value is None else str(value)
        return element

    def _amount(self, parent: ET.Element, name: str, value) -> ET.Element:
        return self._cbc(parent, name, format_money(value), {"currencyID": self._currency})

    def _country(self, parent: ET.Element) -> None:
        country = ET.SubElement(parent, _cac("Country"))
        self._cbc(country, "Name", self.country_name)

    def _tax_category(self, parent: ET.Element, tax_name: str = "KDV", type_code: str = "0015") -> None:
        category = ET.SubElement(parent, _cac("TaxCategory"))
        scheme = ET.SubElement(category, _cac("TaxScheme"))
        self._cbc(scheme, "Name", tax_name)
        self._cbc(scheme, "TaxTypeCode", type_code)

    # ------------------------------------------------------------------
    # Sections, in document order
    # ------------------------------------------------------------------

    def _extensions(self, root: ET.Element) -> None:
        extensions = ET.SubElement(root, f"{{{EXT_NS}}}UBLExtensions")
        extension = ET.SubElement(extensions, f"{{{EXT_NS}}}UBLExtension")
        content = ET.SubElement(extension, f"{{{EXT_NS}}}ExtensionContent")
        stub = ET.SubElement(content, f"{{{SIGNATURE_STUB_NS}}}auto")
        stub.text = "NOSIGN"

    def _header(self, root: ET.Element, payload: InvoicePayload) -> None:
        self._cbc(root, "UBLVersionID", UBL_VERSION)
        self._cbc(root, "CustomizationID", CUSTOMIZATION_ID)
        self._cbc(root, "ProfileID", payload.profile_id)
        self._cbc(root, "ID", payload.invoice_id)
        self._cbc(root, "CopyIndicator", "false")
        self._cbc(root, "UUID", payload.uuid)
        self._cbc(root, "IssueDate", payload.issue_date.isoformat())
        self._cbc(root, "IssueTime", payload.issue_time)
        self._cbc(root, "InvoiceTypeCode", payload.type_code)
        for note in payload.notes:
            self._cbc(root, "Note", note)
        self._cbc(root, "DocumentCurrencyCode", payload.currency)
        self._cbc(root, "LineCountNumeric", payload.line_count)

    def _internet_sale(self, root: ET.Element, payload: InvoicePayload) -> None:
        sale = payload.internet_sale
        reference = ET.SubElement(root, _cac("AdditionalDocumentReference"))
        self._cbc(reference, "ID", sale.reference_id or internet_sale_reference_id(payload.uuid))
        self._cbc(reference, "IssueDate", (sale.payment_date or payload.issue_date).isoformat())
        self._cbc(reference, "DocumentTypeCode", "INTERNETFATURA")
        self._cbc(reference, "DocumentType", "ELEKTRONIK")

        issuer = ET.SubElement(reference, _cac("IssuerParty"))
        identification = ET.SubElement(issuer, _cac("PartyIdentification"))
        self._cbc(identification, "ID", "INTSA", {"schemeID": "PARTYTYPE"})
        if sale.website:
            party_name = ET.SubElement(issuer, _cac("PartyName"))
            self._cbc(party_name, "Name", sale.website)
        address = ET.SubElement(issuer, _cac("PostalAddress"))
        self._cbc(address, "CitySubdivisionName", self.policy.district)
        self._cbc(address, "CityName", self.policy.city)
        self._country(address)

    def _signature(self, root: ET.Element, supplier: InvoiceParty) -> None:
        signature = ET.SubElement(root, _cac("Signature"))
        self._cbc(signature, "ID", supplier.tax_number, {"schemeID": "VKN_TCKN"})

        signatory = ET.SubElement(signature, _cac("SignatoryParty"))
        identification = ET.SubElement(signatory, _cac("PartyIdentification"))
        self._cbc(identification, "ID", supplier.tax_number, {"schemeID": supplier.tax_scheme})
        address = ET.SubElement(signatory, _cac("PostalAddress"))
        self._cbc(address, "StreetName", supplier.street or self.policy.district)
        self._cbc(address, "CitySubdivisionName", supplier.district or "")
        self._cbc(address, "CityName", supplier.city or "")
        self._country(address)

        attachment = ET.SubElement(signature, _cac("DigitalSignatureAttachment"))
        external = ET.SubElement(attachment, _cac("ExternalReference"))
        self._cbc(external, "URI", "#Signature")

    def _supplier(self, root: ET.Element, supplier: InvoiceParty) -> None:
        wrapper = ET.SubElement(root, _cac("AccountingSupplierParty"))
        party = ET.SubElement(wrapper, _cac("Party"))
        if supplier.website:
            self._cbc(party, "WebsiteURI", supplier.website)

        identification = ET.SubElement(party, _cac("PartyIdentification"))
        self._cbc(identification, "ID", supplier.tax_number, {"schemeID": supplier.tax_scheme})
        party_name = ET.SubElement(party, _cac("PartyName"))
        self._cbc(party_name, "Name", supplier.name)

        address = ET.SubElement(party, _cac("PostalAddress"))
        if supplier.street:
            self._cbc(address, "StreetName", supplier.street)
        self._cbc(address, "CitySubdivisionName", supplier.district or "")
        self._cbc(address, "CityName", supplier.city or "")
        if supplier.postal_code:
            self._cbc(address, "PostalZone", supplier.postal_code)
        self._country(address)

        tax_scheme = ET.SubElement(ET.SubElement(party, _cac("PartyTaxScheme")), _cac("TaxScheme"))
        self._cbc(tax_scheme, "Name", supplier.tax_office or "")

    def _customer(self, root: ET.Element, customer: InvoiceParty) -> None:
        policy = self.policy
        wrapper = ET.SubElement(root, _cac("AccountingCustomerParty"))
        party = ET.SubElement(wrapper, _cac("Party"))

        tax_number = customer.tax_number or policy.tax_number
        identification = ET.SubElement(party, _cac("PartyIdentification"))
        scheme = "VKN" if len(tax_number) == 10 else "TCKN"
        self._cbc(identification, "ID", tax_number, {"schemeID": scheme})

        party_name = ET.SubElement(party, _cac("PartyName"))
        if customer.is_person:
            self._cbc(party_name, "Name", f"{customer.first_name} {customer.family_name}")
        else:
            self._cbc(party_name, "Name", customer.name or policy.final_consumer_name)

        address = ET.SubElement(party, _cac("PostalAddress"))
        self._cbc(address, "StreetName", customer.street or policy.street)
        self._cbc(address, "CitySubdivisionName", customer.district or policy.district)
        self._cbc(address, "CityName", customer.city or policy.city)
        self._country(address)

        if customer.tax_office:
            tax_scheme = ET.SubElement(ET.SubElement(party, _cac("PartyTaxScheme")), _cac("TaxScheme"))
            self._cbc(tax_scheme, "Name", customer.tax_office)

        # Person must follow PostalAddress
        if customer.is_person:
            person = ET.SubElement(party, _cac("Person"))
            self._cbc(person, "FirstName", customer.first_name)
            self._cbc(person, "FamilyName", customer.family_name)

    def _delivery(self, root: ET.Element, payload: InvoicePayload) -> None:
        info = payload.delivery
        delivery = ET.SubElement(root, _cac("Delivery"))
        carrier = ET.SubElement(delivery, _cac("CarrierParty"))

        identification = ET.SubElement(carrier, _cac("PartyIdentification"))
        scheme = "TCKN" if len(info.carrier_tax_number) == 11 else "VKN"
        self._cbc(identification, "ID", info.carrier_tax_number, {"schemeID": scheme})
        party_name = ET.SubElement(carrier, _cac("PartyName"))
        self._cbc(party_name, "Name", info.carrier_name)
        address = ET.SubElement(carrier, _cac("PostalAddress"))
        self._cbc(address, "CitySubdivisionName", self.policy.district)
        self._cbc(address, "CityName", self.policy.city)
        self._country(address)

        despatch = ET.SubElement(delivery, _cac("Despatch"))
        self._cbc(despatch, "ActualDespatchDate", (info.despatch_date or payload.issue_date).isoformat())
        self._cbc(despatch, "ActualDespatchTime", info.despatch_time or payload.issue_time)

    def _tax_total(self, root: ET.Element, payload: InvoicePayload) -> None:
        totals = payload.totals
        tax_total = ET.SubElement(root, _cac("TaxTotal"))
        self._amount(tax_total, "TaxAmount", totals.tax_total)
        for subtotal in totals.subtotals:
            element = ET.SubElement(tax_total, _cac("TaxSubtotal"))
            self._amount(element, "TaxableAmount", subtotal.taxable_amount)
            self._amount(element, "TaxAmount", subtotal.tax_amount)
            self._cbc(element, "Percent", format_rate(subtotal.rate))
            self._tax_category(element, subtotal.tax_name, subtotal.tax_type_code)

    def _monetary_total(self, root: ET.Element, payload: InvoicePayload) -> None:
        totals = payload.totals
        monetary = ET.SubElement(root, _cac("LegalMonetaryTotal"))
        self._amount(monetary, "LineExtensionAmount", totals.line_extension)
        self._amount(monetary, "TaxExclusiveAmount", totals.tax_exclusive)
        self._amount(monetary, "TaxInclusiveAmount", totals.tax_inclusive)
        self._amount(monetary, "AllowanceTotalAmount", totals.allowance)
        self._amount(monetary, "PayableAmount", totals.payable)

    def _line(self, root: ET.Element, line: InvoiceLine, line_id: int) -> None:
        element = ET.SubElement(root, _cac("InvoiceLine"))
        self._cbc(element, "ID", line_id)
        self._cbc(element, "InvoicedQuantity", format_rate(line.quantity), {"unitCode": line.unit_code})
        self._amount(element, "LineExtensionAmount", line.line_extension)

        tax_total = ET.SubElement(element, _cac("TaxTotal"))
        self._amount(tax_total, "TaxAmount", line.tax_amount)
        subtotal = ET.SubElement(tax_total, _cac("TaxSubtotal"))
        self._amount(subtotal, "TaxableAmount", line.line_extension)
        self._amount(subtotal, "TaxAmount", line.tax_amount)
        self._cbc(subtotal, "Percent", format_rate(line.vat_rate))
        self._tax_category(subtotal)

        item = ET.SubElement(element, _cac("Item"))
        self._cbc(item, "Name", line.name)

        price = ET.SubElement(element, _cac("Price"))
        self._amount(price, "PriceAmount", line.unit_price)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def build_element(self, payload: InvoicePayload) -> ET.Element:
        """Build the ``Invoice`` element tree."""
        if not payload.lines:
            raise ValueError("An invoice needs at least one line")

        self._currency = payload.currency
        root = ET.Element(f"{{{INVOICE_NS}}}Invoice")

        self._extensions(root)
        self._header(root, payload)
        if payload.internet_sale is not None:
            self._internet_sale(root, payload)
        self._signature(root, payload.supplier)
        self._supplier(root, payload.supplier)
        self._customer(root, payload.customer)
        if payload.delivery is not None:
            self._delivery(root, payload)
        self._tax_total(root, payload)
        self._monetary_total(root, payload)
        for index, line in enumerate(payload.lines, start=1):
            self._line(root, line, index)
        return root

    def build(self, payload: InvoicePayload, pretty: bool = True) -> str:
        """Serialize the invoice to an XML string with declaration."""
        root = self.build_element(payload)
        if pretty:
            ET.indent(root)
        return XML_DECLARATION + ET.tostring(root, encoding="unicode")
