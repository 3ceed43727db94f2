"""Tabular report of a fitted model and its test accuracy."""
import html
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from scipy.stats import chi2

from .errors import ModelNotFittedError
from .regression import Model

COLUMNS = [
    ("name", "Name"),
    ("coefficient", "Coefficient"),
    ("odds_ratio", "Odds Ratio"),
    ("standard_error", "Std. Error"),
    ("wald_statistic", "Wald"),
    ("lower_ci", "Lower Confidence"),
    ("upper_ci", "Upper Confidence"),
]

VARIABLE_PRECISION = 6
SUMMARY_PRECISION = 15
ACCURACY_PRECISION = 2
SIGNIFICANCE_LEVEL = 0.05


@dataclass
class ReportRow:
    name: str
    coefficient: float
    odds_ratio: float
    standard_error: float
    wald_statistic: float
    lower_ci: float
    upper_ci: float


@dataclass
class ModelReport:
    rows: List[ReportRow]
    observed_name: str
    log_likelihood: float
    deviance: float
    chi_square: float
    degrees_of_freedom: int
    critical_chi_square: float
    accuracy: Optional[float] = None
    summary: List[str] = field(default_factory=list)


def build_report(
    model: Model,
    coefficient_names: Sequence[str],
    observed_name: str = "",
    accuracy: Optional[float] = None,
) -> ModelReport:
    """Arrange an enriched model into rows, intercept first."""
    if model is None or model.odds_ratio is None or model.log_likelihood is None:
        raise ModelNotFittedError("Model statistics have not been computed yet")

    rows = [
        ReportRow(
            name=name,
            coefficient=float(model.coefficients[i]),
            odds_ratio=float(model.odds_ratio[i]),
            standard_error=float(model.standard_errors[i]),
            wald_statistic=float(model.wald_statistic[i]),
            lower_ci=float(model.lower_ci[i]),
            upper_ci=float(model.upper_ci[i]),
        )
        for i, name in enumerate(coefficient_names)
    ]

    dof = model.variable_count
    critical = float(chi2.ppf(1.0 - SIGNIFICANCE_LEVEL, dof)) if dof > 0 else float("nan")

    report = ModelReport(
        rows=rows,
        observed_name=observed_name,
        log_likelihood=float(model.log_likelihood),
        deviance=float(model.deviance),
        chi_square=float(model.chi_square),
        degrees_of_freedom=dof,
        critical_chi_square=critical,
        accuracy=accuracy,
    )
    report.summary = summary_lines(report)
    return report


def _fmt(value: float, precision: int) -> str:
    return f"{value:.{precision}f}"


def summary_lines(report: ModelReport) -> List[str]:
    lines = [
        f"Log Likelihood: {_fmt(report.log_likelihood, SUMMARY_PRECISION)}",
        f"-2 * Log Likelihood (Deviance): {_fmt(report.deviance, SUMMARY_PRECISION)}",
        f"Chi-Square Goodness of Fit: {_fmt(report.chi_square, SUMMARY_PRECISION)}",
    ]
    if report.degrees_of_freedom > 0:
        lines.append(
            f"Critical chi-square value for {SIGNIFICANCE_LEVEL} at "
            f"{report.degrees_of_freedom} degrees of freedom: "
            f"{_fmt(report.critical_chi_square, 8)}"
        )
    if report.accuracy is not None:
        lines.append(
            f"Prediction accuracy on testing data: "
            f"{_fmt(report.accuracy, ACCURACY_PRECISION)}%"
        )
    return lines


def row_cells(row: ReportRow) -> List[str]:
    cells = [row.name]
    for attr, _ in COLUMNS[1:]:
        cells.append(_fmt(getattr(row, attr), VARIABLE_PRECISION))
    return cells


def render_text(report: ModelReport) -> str:
    """Pipe-delimited plaintext table followed by the summary lines."""
    lines = ["|".join(title for _, title in COLUMNS)]
    lines.extend("|".join(row_cells(row)) for row in report.rows)
    lines.append("")
    lines.extend(report.summary)
    return "\n".join(lines)


def render_html(report: ModelReport) -> str:
    parts = ["<table>", "<tr>"]
    parts.extend(f"<th>{html.escape(title)}</th>" for _, title in COLUMNS)
    parts.append("</tr>")
    for row in report.rows:
        parts.append("<tr>")
        parts.extend(f"<td>{html.escape(cell)}</td>" for cell in row_cells(row))
        parts.append("</tr>")
    parts.append("</table>")
    parts.extend(f"<div>{html.escape(line)}</div>" for line in report.summary)
    return "".join(parts)
