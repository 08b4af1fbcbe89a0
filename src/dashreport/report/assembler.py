"""PDF layout of fetched panel images."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import structlog
from fpdf import FPDF
from fpdf.errors import FPDFException

from dashreport.config.layout import LayoutConfig
from dashreport.core.errors import AssemblyError
from dashreport.grafana.models import Dashboard, Panel
from dashreport.grafana.timerange import TimeRange

logger = structlog.get_logger()


class DocumentAssembler:
    """Lay panel images out two per page, in dashboard panel order.

    The first page starts with the dashboard title and time range; images then
    alternate between the upper and lower anchor, with a page break after
    every lower image.
    """

    def __init__(self, layout: LayoutConfig | None = None, font_dir: str | Path = "") -> None:
        self.layout = layout or LayoutConfig.default()
        self._font_dir = Path(font_dir) if font_dir else None

    def new_pdf(self) -> FPDF:
        page = self.layout.page
        font = self.layout.font
        pdf = FPDF(unit="pt", format=(page.width, page.height))
        pdf.set_auto_page_break(False)
        if font.ttf:
            ttf_path = self._font_dir / font.ttf if self._font_dir else Path(font.ttf)
            pdf.add_font(font.family, "", str(ttf_path))
        pdf.set_font(font.family, "", font.size)
        return pdf

    def _header_page(self, pdf: FPDF, dashboard: Dashboard, time_range: TimeRange) -> None:
        position = self.layout.position
        line_height = self.layout.font.size
        pdf.add_page()
        pdf.set_xy(position.x, position.br)
        pdf.cell(0, line_height, f"Dashboard: {dashboard.title}")
        pdf.ln(position.br)
        pdf.set_x(position.x)
        pdf.cell(0, line_height, f"{time_range.from_formatted()} to {time_range.to_formatted()}")
        if dashboard.variable_values:
            pdf.ln(position.br)
            pdf.set_x(position.x)
            pdf.cell(0, line_height, f"Variables: {dashboard.variable_values}")

    def assemble(
        self,
        dashboard: Dashboard,
        time_range: TimeRange,
        image_path_for: Callable[[Panel], Path],
        output_path: Path,
    ) -> Path:
        """Write the report PDF to ``output_path`` and return it."""
        position = self.layout.position
        try:
            pdf = self.new_pdf()
            self._header_page(pdf, dashboard, time_range)

            for count, panel in enumerate(dashboard.panels):
                rect = self.layout.rect_for(panel.type)
                image_path = image_path_for(panel)
                if count % 2 == 0:
                    pdf.image(str(image_path), x=position.x, y=position.y1, w=rect.width, h=rect.height)
                else:
                    pdf.image(str(image_path), x=position.x, y=position.y2, w=rect.width, h=rect.height)
                    pdf.add_page()
                logger.debug("panel_image_placed", panel_id=panel.id, page=pdf.page)

            output_path = Path(output_path)
            pdf.output(str(output_path))
        except (FPDFException, OSError, ValueError, RuntimeError) as exc:
            raise AssemblyError(
                f"error rendering PDF for dashboard {dashboard.title}: {exc}",
                details={"dashboard": dashboard.title},
            ) from exc

        logger.info("report_pdf_written", dashboard=dashboard.title, pages=pdf.page, path=str(output_path))
        return output_path
