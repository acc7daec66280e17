"""Word documents generated by the portal: attendance sheets, participation
certificates and per-student activity reports.

Every builder returns an in-memory ``BytesIO`` positioned at the start, ready
to be handed to ``send_file``.
"""
from datetime import datetime
from io import BytesIO
import os

from docx import Document
from docx.enum.section import WD_ORIENT
from docx.enum.table import WD_TABLE_ALIGNMENT
from docx.enum.text import WD_ALIGN_PARAGRAPH
from docx.shared import Pt, RGBColor

DOCX_MIMETYPE = 'application/vnd.openxmlformats-officedocument.wordprocessingml.document'

ORGANIZATION_NAME = 'National Service Scheme'


def create_document(template_path=None):
    """Start from the configured letterhead template when it exists."""
    if template_path and os.path.exists(template_path):
        return Document(template_path)
    return Document()


def document_filename(*parts):
    name = '_'.join(str(p).strip().replace(' ', '_') for p in parts if p)
    return f'{name}_{datetime.now().strftime("%Y%m%d")}.docx'


def _save(doc):
    file_stream = BytesIO()
    doc.save(file_stream)
    file_stream.seek(0)
    return file_stream


def _add_table(doc, headers):
    table = doc.add_table(rows=1, cols=len(headers))
    table.style = 'Table Grid'
    table.alignment = WD_TABLE_ALIGNMENT.CENTER

    hdr_cells = table.rows[0].cells
    for i, header in enumerate(headers):
        hdr_cells[i].text = header
        hdr_cells[i].paragraphs[0].runs[0].font.bold = True
    return table


def _centered(doc, text, size=None, bold=False):
    para = doc.add_paragraph()
    para.alignment = WD_ALIGN_PARAGRAPH.CENTER
    run = para.add_run(text)
    run.bold = bold
    if size:
        run.font.size = Pt(size)
    return para


def build_attendance_sheet(department, program, attendees, template_path=None):
    """Department-wise attendance sheet for one program.

    ``program`` is a dict with ``title``, ``date``, ``time``, ``venue`` and
    ``coordinator``; ``attendees`` is a list of ``{'name', 'remark'}`` dicts in
    the order they should be listed.
    """
    doc = create_document(template_path)

    title = doc.add_heading(f'{department} Attendance Sheet', 0)
    title.alignment = WD_ALIGN_PARAGRAPH.CENTER

    _centered(doc, ORGANIZATION_NAME, bold=True)

    doc.add_paragraph(f'Program: {program["title"]}')
    doc.add_paragraph(f'Date: {program.get("date") or "N/A"}    Time: {program.get("time") or "N/A"}')
    doc.add_paragraph(f'Venue: {program.get("venue") or "N/A"}')
    doc.add_paragraph(f'Coordinator: {program.get("coordinator") or "N/A"}')
    doc.add_paragraph(f'Total Attendees: {len(attendees)}')
    doc.add_paragraph()

    table = _add_table(doc, ['No.', 'Name', 'Remark', 'Signature'])
    for idx, attendee in enumerate(attendees, 1):
        row_cells = table.add_row().cells
        row_cells[0].text = str(idx)
        row_cells[1].text = attendee['name']
        row_cells[2].text = attendee.get('remark') or ''
        row_cells[3].text = ''

    doc.add_paragraph()
    doc.add_paragraph('Signature of Program Officer: ______________________')
    return _save(doc)


def build_certificate(certificate, template_path=None):
    """Participation certificate, landscape A4-ish single page.

    Keys: ``studentName``, ``studentDepartment``, ``programTitle``, ``date``,
    ``time``, ``venue``, ``coordinator``.
    """
    doc = create_document(template_path)

    section = doc.sections[0]
    if section.orientation != WD_ORIENT.LANDSCAPE:
        section.orientation = WD_ORIENT.LANDSCAPE
        section.page_width, section.page_height = section.page_height, section.page_width

    _centered(doc, ORGANIZATION_NAME.upper(), size=16, bold=True)
    heading = _centered(doc, 'Certificate of Participation', size=32, bold=True)
    heading.runs[0].font.color.rgb = RGBColor(0x1E, 0x3A, 0x8A)
    doc.add_paragraph()

    _centered(doc, 'This is to certify that', size=14)
    _centered(doc, certificate['studentName'], size=24, bold=True)
    if certificate.get('studentDepartment'):
        _centered(doc, f'of the Department of {certificate["studentDepartment"]}', size=14)

    _centered(doc, 'has actively participated in', size=14)
    _centered(doc, certificate['programTitle'], size=20, bold=True)

    held = f'held on {certificate.get("date") or "N/A"}'
    if certificate.get('time'):
        held += f' at {certificate["time"]}'
    if certificate.get('venue'):
        held += f', {certificate["venue"]}'
    _centered(doc, held, size=14)

    doc.add_paragraph()
    doc.add_paragraph()

    signatures = doc.add_table(rows=2, cols=2)
    signatures.alignment = WD_TABLE_ALIGNMENT.CENTER
    signatures.rows[0].cells[0].text = certificate.get('coordinator') or '______________________'
    signatures.rows[0].cells[1].text = '______________________'
    signatures.rows[1].cells[0].text = 'Program Coordinator'
    signatures.rows[1].cells[1].text = 'Program Officer'
    for row in signatures.rows:
        for cell in row.cells:
            cell.paragraphs[0].alignment = WD_ALIGN_PARAGRAPH.CENTER

    return _save(doc)


def build_student_report(student, report, template_path=None):
    doc = create_document(template_path)

    title = doc.add_heading(f'{student["name"]} Activity Report', 0)
    title.alignment = WD_ALIGN_PARAGRAPH.CENTER

    date_para = doc.add_paragraph(f'{datetime.now().strftime("%Y-%m-%d")}')
    date_para.alignment = WD_ALIGN_PARAGRAPH.CENTER

    doc.add_paragraph(f'Student ID: {student["id"]}')
    doc.add_paragraph(f'Department: {student.get("department") or "N/A"}')
    doc.add_paragraph(f'Year: {student.get("year") or "N/A"}')
    doc.add_paragraph()

    activities = report.get('activities') or []
    doc.add_heading('Extra Activities', level=1)
    if activities:
        table = _add_table(doc, ['No.', 'Badge', 'Title', 'Details', 'Date'])
        for idx, activity in enumerate(activities, 1):
            row_cells = table.add_row().cells
            row_cells[0].text = str(idx)
            row_cells[1].text = (activity.get('badge') or '').title()
            row_cells[2].text = activity.get('title') or ''
            row_cells[3].text = activity.get('content') or ''
            row_cells[4].text = (activity.get('createdAt') or '')[:10]
    else:
        doc.add_paragraph('No activities recorded.')

    doc.add_paragraph()

    coordinated = report.get('coordinatedPrograms') or []
    doc.add_heading('Coordinated Programs', level=1)
    if coordinated:
        table = _add_table(doc, ['No.', 'Title', 'Date', 'Time', 'Venue'])
        for idx, program in enumerate(coordinated, 1):
            row_cells = table.add_row().cells
            row_cells[0].text = str(idx)
            row_cells[1].text = program.get('title') or ''
            row_cells[2].text = program.get('date') or 'N/A'
            row_cells[3].text = program.get('time') or 'N/A'
            row_cells[4].text = program.get('venue') or 'N/A'
    else:
        doc.add_paragraph('No coordinated programs.')

    return _save(doc)
