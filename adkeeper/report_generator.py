"""
Report Generator - Report PDF e JSON dell'igiene Active Directory
"""

import json
from dataclasses import asdict
from datetime import datetime
from typing import Dict, List, Any, Optional

from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import getSampleStyleSheet, ParagraphStyle
from reportlab.lib.units import cm
from reportlab.lib.enums import TA_CENTER, TA_JUSTIFY
from reportlab.platypus import (
    SimpleDocTemplate, Paragraph, Spacer, Table, TableStyle,
    PageBreak, HRFlowable
)
from xml.sax.saxutils import escape

from . import __version__
from .conflict_objects import ConflictObject
from .privileged_groups import PrivilegeFinding, PrivilegedGroup
from .stale_accounts import AccountIssue, Risk


def _cell(text: Any, limit: int = 100) -> str:
    """Testo per le celle: troncato ed escapato per i Paragraph"""
    value = str(text or "")
    if len(value) > limit:
        value = value[:limit] + "..."
    return escape(value)


class ReportGenerator:
    """
    Genera il report PDF dell'audit di igiene del dominio:
    account inutilizzati, oggetti in conflitto e gruppi privilegiati.
    """

    COLORS = {
        'primary': colors.HexColor('#1a365d'),
        'secondary': colors.HexColor('#38a169'),
        'critical': colors.HexColor('#dc3545'),
        'warning': colors.HexColor('#ffc107'),
        'ok': colors.HexColor('#28a745'),
        'info': colors.HexColor('#17a2b8'),
        'light_gray': colors.HexColor('#f8f9fa'),
        'dark_gray': colors.HexColor('#343a40'),
        'text': colors.HexColor('#212529'),
    }

    # Righe massime per tabella, per evitare report troppo lunghi
    MAX_ROWS = 40

    def __init__(self):
        self.styles = getSampleStyleSheet()
        self._setup_custom_styles()

    def _setup_custom_styles(self):
        """Configura stili personalizzati"""
        self.styles.add(ParagraphStyle(
            name='MainTitle',
            parent=self.styles['Heading1'],
            fontSize=28,
            textColor=self.COLORS['primary'],
            alignment=TA_CENTER,
            spaceAfter=20,
            fontName='Helvetica-Bold'
        ))
        self.styles.add(ParagraphStyle(
            name='SubTitle',
            parent=self.styles['Normal'],
            fontSize=14,
            textColor=self.COLORS['dark_gray'],
            alignment=TA_CENTER,
            spaceAfter=30
        ))
        self.styles.add(ParagraphStyle(
            name='SectionHeader',
            parent=self.styles['Heading2'],
            fontSize=16,
            textColor=self.COLORS['primary'],
            spaceBefore=20,
            spaceAfter=10,
            fontName='Helvetica-Bold'
        ))
        self.styles.add(ParagraphStyle(
            name='ReportBody',
            parent=self.styles['Normal'],
            fontSize=10,
            textColor=self.COLORS['text'],
            alignment=TA_JUSTIFY,
            spaceAfter=8,
            leading=14
        ))
        self.styles.add(ParagraphStyle(
            name='TableCell',
            parent=self.styles['Normal'],
            fontSize=8,
            leading=10
        ))
        self.styles.add(ParagraphStyle(
            name='Footer',
            parent=self.styles['Normal'],
            fontSize=8,
            textColor=self.COLORS['dark_gray'],
            alignment=TA_CENTER
        ))

    def _risk_color(self, risk: Risk):
        return {
            Risk.CRITICAL: self.COLORS['critical'],
            Risk.WARNING: self.COLORS['warning'],
            Risk.INFO: self.COLORS['info'],
        }.get(risk, self.COLORS['ok'])

    def _table(self, data: List[List[Any]], widths: List[float], header_color) -> Table:
        cell_style = self.styles['TableCell']
        rows = [data[0]] + [
            [Paragraph(_cell(value), cell_style) for value in row]
            for row in data[1:]
        ]
        table = Table(rows, colWidths=widths, repeatRows=1)
        table.setStyle(TableStyle([
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (-1, -1), 8),
            ('BACKGROUND', (0, 0), (-1, 0), header_color),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
            ('GRID', (0, 0), (-1, -1), 0.5, self.COLORS['light_gray']),
            ('ROWBACKGROUNDS', (0, 1), (-1, -1), [colors.white, self.COLORS['light_gray']]),
            ('TOPPADDING', (0, 0), (-1, -1), 4),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 4),
            ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ]))
        return table

    def _create_header(self, domain: str, scan_date: datetime) -> List:
        elements = []
        elements.append(Paragraph("ADKEEPER", self.styles['MainTitle']))
        elements.append(Paragraph(
            "Audit Igiene Active Directory",
            self.styles['SubTitle']
        ))

        info_data = [
            ["Dominio analizzato:", domain],
            ["Data audit:", scan_date.strftime("%d/%m/%Y alle %H:%M")],
            ["Generato da:", f"ADKeeper v{__version__}"]
        ]
        info_table = Table(info_data, colWidths=[5*cm, 10*cm])
        info_table.setStyle(TableStyle([
            ('FONTNAME', (0, 0), (0, -1), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (-1, -1), 10),
            ('TEXTCOLOR', (0, 0), (-1, -1), self.COLORS['text']),
            ('ALIGN', (0, 0), (0, -1), 'RIGHT'),
            ('ALIGN', (1, 0), (1, -1), 'LEFT'),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 8),
        ]))
        elements.append(info_table)
        elements.append(Spacer(1, 20))
        return elements

    def _create_executive_summary(
        self,
        stale_summary: Dict,
        conflict_summary: Dict,
        privileged_summary: Dict
    ) -> List:
        elements = []
        elements.append(Paragraph("Riepilogo Esecutivo", self.styles['SectionHeader']))

        critical = stale_summary['critical_count'] + privileged_summary['critical_count']
        warning = (stale_summary['warning_count'] + privileged_summary['warning_count']
                   + conflict_summary['total_conflicts'])

        if critical > 0:
            risk_color = self.COLORS['critical']
            risk_text = "RISCHIO ALTO"
            risk_desc = "Sono stati rilevati problemi critici che richiedono intervento immediato."
        elif warning > 0:
            risk_color = self.COLORS['warning']
            risk_text = "RISCHIO MEDIO"
            risk_desc = "Il dominio contiene oggetti da ripulire o verificare."
        else:
            risk_color = self.COLORS['ok']
            risk_text = "RISCHIO BASSO"
            risk_desc = "Non sono stati rilevati problemi significativi."

        summary_data = [
            [Paragraph(
                f"<font size='20'><b>{risk_text}</b></font>",
                ParagraphStyle('risk', alignment=TA_CENTER, textColor=risk_color)
            )],
            [Paragraph(risk_desc, ParagraphStyle('desc', alignment=TA_CENTER, fontSize=10))]
        ]
        summary_table = Table(summary_data, colWidths=[15*cm])
        summary_table.setStyle(TableStyle([
            ('BACKGROUND', (0, 0), (-1, -1), self.COLORS['light_gray']),
            ('BOX', (0, 0), (-1, -1), 2, risk_color),
            ('TOPPADDING', (0, 0), (-1, -1), 15),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 15),
        ]))
        elements.append(summary_table)
        elements.append(Spacer(1, 15))

        stats_data = [
            ["Account", "Conflitti", "Gruppi privilegiati"],
            [
                f"Utenti attivi: {stale_summary['active_users']}/{stale_summary['total_users']}",
                f"Oggetti CNF: {conflict_summary['cnf_objects']}",
                f"Account privilegiati: {privileged_summary['privileged_accounts']}",
            ],
            [
                f"Inattivi: {stale_summary['inactive_users']}",
                f"LostAndFound: {conflict_summary['lost_and_found']}",
                f"Problemi critici: {privileged_summary['critical_count']}",
            ],
            [
                f"Computer inattivi: {stale_summary['stale_computers']}",
                f"$DUPLICATE: {conflict_summary['duplicate_accounts']}",
                f"Attenzione: {privileged_summary['warning_count']}",
            ],
        ]
        stats_table = Table(stats_data, colWidths=[5*cm, 5*cm, 5*cm])
        stats_table.setStyle(TableStyle([
            ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
            ('FONTSIZE', (0, 0), (-1, -1), 9),
            ('BACKGROUND', (0, 0), (-1, 0), self.COLORS['primary']),
            ('TEXTCOLOR', (0, 0), (-1, 0), colors.white),
            ('ALIGN', (0, 0), (-1, -1), 'CENTER'),
            ('GRID', (0, 0), (-1, -1), 1, self.COLORS['light_gray']),
            ('TOPPADDING', (0, 0), (-1, -1), 8),
            ('BOTTOMPADDING', (0, 0), (-1, -1), 8),
        ]))
        elements.append(stats_table)
        return elements

    def _create_stale_section(self, issues: List[AccountIssue], summary: Dict) -> List:
        elements = [PageBreak()]
        elements.append(Paragraph("Account Inutilizzati", self.styles['SectionHeader']))
        elements.append(Paragraph(
            f"Utenti: {summary['total_users']} (disabilitati {summary['disabled_users']}) | "
            f"Computer: {summary['total_computers']} "
            f"(disabilitati {summary['disabled_computers']}) | "
            f"Punteggio: {summary['score']}/100 - {summary['assessment']}",
            self.styles['ReportBody']
        ))

        if not issues:
            elements.append(Paragraph("Nessun problema rilevato.", self.styles['ReportBody']))
            return elements

        order = {Risk.CRITICAL: 0, Risk.WARNING: 1, Risk.INFO: 2, Risk.OK: 3}
        ordered = sorted(issues, key=lambda i: (order[i.risk_level], i.username.lower()))
        data = [["Account", "Tipo", "Rischio", "Problema"]]
        for issue in ordered[:self.MAX_ROWS]:
            data.append([
                issue.username,
                issue.object_type,
                issue.risk_level.value.upper(),
                issue.description,
            ])
        elements.append(self._table(data, [3.5*cm, 2*cm, 2*cm, 7.5*cm], self.COLORS['primary']))
        if len(ordered) > self.MAX_ROWS:
            elements.append(Paragraph(
                f"... altri {len(ordered) - self.MAX_ROWS} problemi nel file JSON.",
                self.styles['ReportBody']
            ))
        return elements

    def _create_conflict_section(self, conflicts: List[ConflictObject]) -> List:
        elements = [PageBreak()]
        elements.append(Paragraph("Oggetti in Conflitto", self.styles['SectionHeader']))
        elements.append(Paragraph(
            "Oggetti generati dalla risoluzione dei conflitti di replica: "
            "nomi con suffisso CNF, oggetti orfani in LostAndFound e "
            "account con sAMAccountName duplicato.",
            self.styles['ReportBody']
        ))
        if not conflicts:
            elements.append(Paragraph("Nessun oggetto in conflitto.", self.styles['ReportBody']))
            return elements

        data = [["Tipo", "Nome originale", "Classe", "Originale esiste"]]
        for conflict in conflicts[:self.MAX_ROWS]:
            exists = {True: "Sì", False: "No", None: "-"}[conflict.original_exists]
            data.append([
                conflict.conflict_type,
                conflict.original_name,
                conflict.object_class,
                exists,
            ])
        elements.append(self._table(data, [3.5*cm, 6*cm, 3*cm, 2.5*cm], self.COLORS['warning']))
        return elements

    def _create_privileged_section(
        self,
        groups: List[PrivilegedGroup],
        findings: List[PrivilegeFinding]
    ) -> List:
        elements = [PageBreak()]
        elements.append(Paragraph("Gruppi Privilegiati", self.styles['SectionHeader']))

        data = [["Gruppo", "Membri effettivi", "Membri"]]
        for group in groups:
            names = ", ".join(m.username for m in group.members)
            data.append([group.name, str(len(group.members)), names])
        elements.append(self._table(data, [4.5*cm, 2.5*cm, 8*cm], self.COLORS['primary']))
        elements.append(Spacer(1, 15))

        if findings:
            data = [["Account", "Rischio", "Problema", "Azione"]]
            for finding in findings[:self.MAX_ROWS]:
                data.append([
                    finding.subject,
                    finding.risk_level.value.upper(),
                    finding.description,
                    finding.recommendation,
                ])
            elements.append(self._table(
                data, [3*cm, 2*cm, 5*cm, 5*cm], self.COLORS['critical']
            ))
        return elements

    def _create_recommendations(self, stale_summary: Dict, conflict_summary: Dict,
                                privileged_summary: Dict) -> List:
        elements = [PageBreak()]
        elements.append(Paragraph(
            "Raccomandazioni e Prossimi Passi",
            self.styles['SectionHeader']
        ))

        priorities = []
        if privileged_summary['critical_count'] > 0 or stale_summary['critical_count'] > 0:
            priorities.append(
                "<b>PRIORITÀ 1 - URGENTE:</b><br/>"
                "- Disabilitare gli account privilegiati inutilizzati<br/>"
                "- Rimuovere il flag 'Password never expires' dagli account admin<br/>"
                "- Sostituire le appartenenze permanenti con concessioni JIT"
            )
        if stale_summary['warning_count'] > 0 or conflict_summary['total_conflicts'] > 0:
            priorities.append(
                "<b>PRIORITÀ 2 - IMPORTANTE:</b><br/>"
                "- Disabilitare e poi eliminare utenti e computer inattivi<br/>"
                "- Confrontare gli oggetti CNF con gli originali ed eliminare i duplicati<br/>"
                "- Ripristinare o eliminare gli oggetti in LostAndFound"
            )
        priorities.append(
            "<b>PRIORITÀ 3 - MANUTENZIONE:</b><br/>"
            "- Pianificare l'audit con cadenza mensile<br/>"
            "- Documentare il responsabile di ogni account di servizio"
        )

        for priority in priorities:
            elements.append(Paragraph(priority, self.styles['ReportBody']))
            elements.append(Spacer(1, 10))
        return elements

    def _create_footer(self) -> List:
        elements = [Spacer(1, 30)]
        elements.append(HRFlowable(
            width="100%", thickness=1,
            color=self.COLORS['primary'], spaceAfter=10
        ))
        elements.append(Paragraph(
            "Report generato da <b>ADKeeper</b> - Strumenti di amministrazione Active Directory",
            self.styles['Footer']
        ))
        return elements

    def generate(
        self,
        domain: str,
        stale_issues: List[AccountIssue],
        stale_summary: Dict,
        conflicts: List[ConflictObject],
        conflict_summary: Dict,
        privileged_groups: List[PrivilegedGroup],
        privileged_findings: List[PrivilegeFinding],
        privileged_summary: Dict,
        output_path: str,
        scan_date: Optional[datetime] = None
    ) -> str:
        """
        Genera il report PDF completo.

        Returns:
            Percorso del file generato
        """
        doc = SimpleDocTemplate(
            output_path,
            pagesize=A4,
            rightMargin=2*cm,
            leftMargin=2*cm,
            topMargin=2*cm,
            bottomMargin=2*cm
        )

        elements = []
        elements.extend(self._create_header(domain, scan_date or datetime.now()))
        elements.extend(self._create_executive_summary(
            stale_summary, conflict_summary, privileged_summary
        ))
        elements.extend(self._create_stale_section(stale_issues, stale_summary))
        elements.extend(self._create_conflict_section(conflicts))
        elements.extend(self._create_privileged_section(privileged_groups, privileged_findings))
        elements.extend(self._create_recommendations(
            stale_summary, conflict_summary, privileged_summary
        ))
        elements.extend(self._create_footer())

        doc.build(elements)
        return output_path


def _json_default(value: Any):
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Risk):
        return value.value
    return str(value)


def export_json(output_path: str, domain: str, **sections: Any) -> str:
    """
    Salva i risultati in JSON.

    Le sezioni possono contenere dataclass, liste di dataclass o dizionari.
    """
    def convert(value):
        if isinstance(value, list):
            return [convert(v) for v in value]
        if hasattr(value, "__dataclass_fields__"):
            return asdict(value)
        return value

    data = {
        "domain": domain,
        "scan_date": datetime.now().isoformat(),
    }
    for name, value in sections.items():
        data[name] = convert(value)

    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False, default=_json_default)
    return output_path
