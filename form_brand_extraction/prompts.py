from __future__ import annotations

SCHEMA_PROMPT = """\
You are an expert at analyzing PDF enrollment forms and converting them into JSON Schema format.

I will provide you with images of every page of an enrollment form, in page order. Analyze the form
and generate a JSON Schema that matches the exact format described below.

## ONLY FIELDS FILLED IN BY THE DOCUMENT HOLDER

Include only fields from sections where the person enrolling provides information and signs:
- demographics (name, date of birth, address, gender)
- contact details (phone, email, preferred language)
- insurance information the holder copies from their card
- consent checkboxes and signatures
- caregiver information (if the holder is a minor)
- preferences (best time to call, communication preferences)

Skip every section completed by a professional or counterparty:
- prescriber/physician information (NPI, license, office details)
- diagnosis codes, prescription details, dosage, refills
- professional signatures and certifications

When in doubt: if a section says "FOR HEALTHCARE PROFESSIONALS" or asks for licensing information,
skip it.

## JSON SCHEMA FORMAT

{
  "$schema": "http://json-schema.org/draft-07/schema#",
  "title": "[Form Title]",
  "description": "[Form Description]",
  "type": "object",
  "x-form-config": {
    "formId": "[kebab-case-form-id]",
    "version": "1.0",
    "pages": [
      {
        "pageId": "[page-id]",
        "title": "[Page Title]",
        "sections": [
          {
            "sectionId": "[section-id]",
            "title": "[Section Title]",
            "description": "[Optional description]",
            "layout": [
              {
                "type": "row",
                "columns": [
                  {"width": "[percentage like 50%, 100%, 40%]", "fields": ["[fieldName]"]}
                ]
              }
            ]
          }
        ]
      }
    ]
  },
  "properties": {
    "[fieldName]": {
      "type": "[string|boolean]",
      "title": "[Field Label]",
      "x-field-config": {
        "required": true,
        "fieldType": "[text|email|date|phone|select|radio|checkbox|html]",
        "placeholder": "[optional]",
        "options": [{"value": "yes", "label": "Yes"}]
      }
    }
  },
  "required": ["field1", "field2"]
}

## FIELD TYPES

Infer the type from the visual control on the page:
- text: regular text input
- email: email input
- date: date picker
- phone: phone number, mask (999) 999-9999
- select: dropdown (requires "options")
- radio: radio buttons (requires "options", may set "layout": "horizontal" or "vertical")
- checkbox: single checkbox (type "boolean")
- html: static content display

## LAYOUT

1. Fields that sit side by side on the page go in the same row, with widths that reflect their
   relative size (e.g. 50%/50% or 40%/60%).
2. A field spanning the full width gets 100%.
3. Group fields under the section headers visible on the page.
4. Keep the exact top-to-bottom order of the fields on the page.

## NAMING AND REQUIRED FIELDS

- Field names are camelCase versions of the labels ("First Name" -> "firstName").
- A field is required when an asterisk (*) or "(required)" is visible next to it; list every
  required field name in the root "required" array.

## OUTPUT

Return ONLY the raw JSON schema. No markdown fences, no commentary. The output must parse with a
strict JSON parser: balanced braces and brackets, no trailing commas, every key and string in double
quotes, and quotes, backslashes, newlines and tabs inside strings escaped.
"""

COLOR_PROMPT_TEMPLATE = """\
You are analyzing a {source} from a company to extract brand colors for an enrollment form.

Carefully examine the visual content and identify the following colors:

1. Primary Button Color - the main call-to-action button color
2. Header Background Color - the header/navigation bar background
3. Footer Background Color - the footer area background (often matches the header or is darker)
4. Accent/Highlight Color - used for links, highlights and decorative elements
5. Secondary Button Color - less prominent buttons, often gray or muted
6. Sidebar/Navigation Color - background of sidebars or secondary navigation

Extract the ACTUAL colors you see, not generic defaults. Call-to-action buttons usually carry the
primary brand color. Prefer combinations with good contrast.

Return ONLY a JSON object with hex color values, no additional text:
{{
  "primaryButton": "#RRGGBB",
  "header": "#RRGGBB",
  "footer": "#RRGGBB",
  "accent": "#RRGGBB",
  "secondaryButton": "#RRGGBB",
  "sidebar": "#RRGGBB"
}}
"""


def color_prompt(source: str) -> str:
    return COLOR_PROMPT_TEMPLATE.format(source=source)
