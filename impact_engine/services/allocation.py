"""
Physical allocation of shared facility emissions to client products.

The pure calculator `calculate_allocation` derives every figure from the facility
totals and the client volume; `allocate` and `recalculate_allocation` validate and
persist the result on an AllocationRecord, appending an immutable CalculationSnapshot
whenever the inputs or outputs change.
"""

import logging
from decimal import Decimal
from typing import Optional

from django.db import transaction
from django.db.models import Sum
from django.utils import timezone

from ..conf import get_setting
from ..exceptions import (
    IncompleteMix, InvalidAllocation, InvalidStatusTransition,
    LockedRecordError, OverlappingPeriod,
)
from ..models.allocation import (
    AllocationRecord, CalculationSnapshot, FacilityPeriodTotals, ProductionMixEntry,
)
from ..models.assessments import ProductAssessment
from ..models.organizations import Product

logger = logging.getLogger(__name__)

FORMULA_VERSION = 'physical-allocation/1.0'
FORMULA = 'allocated_emissions = total_facility_co2e * (client_volume / total_volume)'

RATIO_QUANTUM = Decimal('0.0000000001')
AMOUNT_QUANTUM = Decimal('0.000001')
INTENSITY_QUANTUM = Decimal('0.0000000001')


def _q(value: Decimal, quantum=AMOUNT_QUANTUM) -> Decimal:
    return value.quantize(quantum)


def _as_decimal(value) -> Optional[Decimal]:
    if value is None:
        return None
    return value if isinstance(value, Decimal) else Decimal(str(value))


def _fmt(value) -> Optional[str]:
    """ Fixed-precision string so stored and in-memory values compare equal. """
    return None if value is None else str(_q(_as_decimal(value)))


def calculate_allocation(totals: FacilityPeriodTotals, client_volume) -> dict:
    """
    Compute a client's share of a facility's period totals.

    Raises:
        InvalidAllocation if the total volume is not positive, or the client volume is
        negative or larger than the total volume.
    """
    total_volume = _as_decimal(totals.total_production_volume)
    total_emissions = _as_decimal(totals.total_emissions)
    client_volume = _as_decimal(client_volume)

    if total_volume is None or total_volume <= 0:
        raise InvalidAllocation(f"Total production volume must be positive (got {total_volume})")
    if client_volume is None or client_volume < 0:
        raise InvalidAllocation(f"Client production volume must not be negative (got {client_volume})")
    if client_volume > total_volume:
        raise InvalidAllocation(
            f"Client production volume {client_volume} exceeds facility total {total_volume}"
        )

    ratio = _q(client_volume / total_volume, RATIO_QUANTUM)
    allocated = _q(total_emissions * ratio)
    assumptions = []

    if totals.has_reported_scope_split:
        scope1 = _q(_as_decimal(totals.scope1_emissions) * ratio)
        scope2 = _q(_as_decimal(totals.scope2_emissions) * ratio)
        uses_default_split = False
    else:
        scope1_share = Decimal(str(get_setting('DEFAULT_SCOPE1_SHARE')))
        scope1 = _q(allocated * scope1_share)
        scope2 = allocated - scope1
        uses_default_split = True
        assumptions.append(
            f"Scope split not reported; assumed {scope1_share * 100:.0f}% fossil (scope 1) / "
            f"{(Decimal('1') - scope1_share) * 100:.0f}% electricity (scope 2)"
        )

    if totals.scope3_emissions is not None:
        scope3 = _q(_as_decimal(totals.scope3_emissions) * ratio)
    else:
        scope3 = _q(Decimal('0'))

    water = _q(_as_decimal(totals.total_water) * ratio) if totals.total_water is not None else None
    waste = _q(_as_decimal(totals.total_waste) * ratio) if totals.total_waste is not None else None
    intensity = _q(allocated / client_volume, INTENSITY_QUANTUM) if client_volume > 0 else _q(Decimal('0'), INTENSITY_QUANTUM)

    return {
        'attribution_ratio': ratio,
        'allocated_emissions': allocated,
        'scope1_emissions': scope1,
        'scope2_emissions': scope2,
        'scope3_emissions': scope3,
        'uses_default_scope_split': uses_default_split,
        'allocated_water': water,
        'allocated_waste': waste,
        'emission_intensity_per_unit': intensity,
        'metadata': {
            'formula_version': FORMULA_VERSION,
            'formula': FORMULA,
            'inputs': {
                'period_totals_id': totals.pk,
                'reporting_period_start': str(totals.reporting_period_start),
                'reporting_period_end': str(totals.reporting_period_end),
                'total_production_volume': _fmt(total_volume),
                'volume_unit': totals.volume_unit,
                'total_emissions': _fmt(total_emissions),
                'scope1_emissions': _fmt(totals.scope1_emissions),
                'scope2_emissions': _fmt(totals.scope2_emissions),
                'scope3_emissions': _fmt(totals.scope3_emissions),
                'total_water': _fmt(totals.total_water),
                'total_waste': _fmt(totals.total_waste),
                'client_production_volume': _fmt(client_volume),
                'entry_method': totals.entry_method,
            },
            'outputs': {
                'attribution_ratio': str(ratio),
                'allocated_emissions': str(allocated),
                'scope1_emissions': str(scope1),
                'scope2_emissions': str(scope2),
                'scope3_emissions': str(scope3),
                'allocated_water': None if water is None else str(water),
                'allocated_waste': None if waste is None else str(waste),
                'emission_intensity_per_unit': str(intensity),
            },
            'assumptions': assumptions,
        },
    }


def promoted_status(status: str, is_energy_intensive_process: bool, locked: bool) -> str:
    """ Automatic status promotion; every other transition is a reviewer decision. """
    if status == AllocationRecord.STATUS_DRAFT and is_energy_intensive_process:
        return AllocationRecord.STATUS_PROVISIONAL
    if locked and not is_energy_intensive_process and status in (AllocationRecord.STATUS_DRAFT, AllocationRecord.STATUS_PROVISIONAL):
        return AllocationRecord.STATUS_VERIFIED
    return status


def lock_product_allocations(product) -> Product:
    """
    Row-lock the product so overlap checks and inserts of its allocations run one at a time.

    Must be called inside a transaction.
    """
    return Product.objects.select_for_update().get(pk=product.pk)


def check_overlapping_period(product, facility, period_start, period_end, exclude_pk=None):
    """ Reject a period overlapping another allocation of the same product at the same facility. """
    if period_end <= period_start:
        raise InvalidAllocation("Reporting period end must be after its start")
    conflicts = AllocationRecord.objects.filter(
        product=product,
        facility=facility,
        reporting_period_start__lt=period_end,
        reporting_period_end__gt=period_start,
    )
    if exclude_pk is not None:
        conflicts = conflicts.exclude(pk=exclude_pk)
    conflict_ids = list(conflicts.values_list('pk', flat=True))
    if conflict_ids:
        raise OverlappingPeriod(
            f"{product} already has an allocation at {facility} overlapping "
            f"{period_start} - {period_end}",
            conflicting_ids=conflict_ids,
        )


def _apply_calculation(record: AllocationRecord, result: dict) -> bool:
    """ Copy calculated figures onto the record. Returns True when anything changed. """
    metadata = result['metadata']
    new_status = promoted_status(record.status, record.is_energy_intensive_process, record.locked_at is not None)
    changed = record.calculation_metadata != metadata or record.status != new_status

    for field in (
        'attribution_ratio', 'allocated_emissions', 'scope1_emissions', 'scope2_emissions',
        'scope3_emissions', 'uses_default_scope_split', 'allocated_water', 'allocated_waste',
        'emission_intensity_per_unit',
    ):
        setattr(record, field, result[field])

    if new_status != record.status:
        logger.info(f"[ALLOCATION] Auto-promoting allocation {record.pk} from {record.status} to {new_status}")
        record.status = new_status
    record.calculation_metadata = metadata
    return changed


def _append_snapshot(record: AllocationRecord):
    metadata = record.calculation_metadata
    latest = record.snapshots.order_by('-created_at', '-pk').first()
    if latest is not None and latest.inputs == metadata['inputs'] and latest.outputs == metadata['outputs']:
        return None
    return CalculationSnapshot.objects.create(
        allocation=record,
        formula_version=metadata['formula_version'],
        formula=metadata['formula'],
        inputs=metadata['inputs'],
        outputs=metadata['outputs'],
        assumptions=metadata.get('assumptions', []),
    )


@transaction.atomic
def allocate(
    period_totals: FacilityPeriodTotals,
    client_volume,
    product=None,
    is_energy_intensive_process: bool = False,
) -> AllocationRecord:
    """
    Create an allocation of `period_totals` to `product`.

    Validation failures raise before anything is written.
    """
    if product is None:
        raise InvalidAllocation("An allocation needs a client product")

    result = calculate_allocation(period_totals, client_volume)
    lock_product_allocations(product)
    check_overlapping_period(
        product, period_totals.facility,
        period_totals.reporting_period_start, period_totals.reporting_period_end,
    )

    record = AllocationRecord(
        product=product,
        facility=period_totals.facility,
        period_totals=period_totals,
        reporting_period_start=period_totals.reporting_period_start,
        reporting_period_end=period_totals.reporting_period_end,
        client_production_volume=_as_decimal(client_volume),
        is_energy_intensive_process=is_energy_intensive_process,
    )
    _apply_calculation(record, result)
    record.calculated_at = timezone.now()
    record.save()
    _append_snapshot(record)

    logger.info(
        f"[ALLOCATION] Created allocation {record.pk}: {product} at {period_totals.facility} "
        f"ratio={record.attribution_ratio} allocated={record.allocated_emissions} kgCO2e"
    )
    return record


def recalculate_allocation(record_or_pk, client_volume=None) -> AllocationRecord:
    """
    Re-run the calculator for one record under a row lock.

    Repeated calls with unchanged inputs leave every field as it was and append no snapshot.
    """
    pk = getattr(record_or_pk, 'pk', record_or_pk)
    with transaction.atomic():
        record = (
            AllocationRecord.objects.select_for_update()
            .select_related('period_totals', 'facility', 'product')
            .get(pk=pk)
        )
        if client_volume is not None:
            record.client_production_volume = _as_decimal(client_volume)

        totals = record.period_totals
        result = calculate_allocation(totals, record.client_production_volume)
        if (record.reporting_period_start, record.reporting_period_end) != (totals.reporting_period_start, totals.reporting_period_end):
            lock_product_allocations(record.product)
            check_overlapping_period(
                record.product, record.facility,
                totals.reporting_period_start, totals.reporting_period_end,
                exclude_pk=record.pk,
            )
            record.reporting_period_start = totals.reporting_period_start
            record.reporting_period_end = totals.reporting_period_end

        if _apply_calculation(record, result):
            record.calculated_at = timezone.now()
            record.save()
            _append_snapshot(record)

    logger.debug(f"[ALLOCATION] Recalculated allocation {record.pk}: allocated={record.allocated_emissions}")
    return record


def recalculate_allocations_for_totals(period_totals: FacilityPeriodTotals) -> dict:
    """ Recompute every allocation drawn from one set of period totals. """
    stats = {'recalculated': 0, 'errors': []}
    for pk in period_totals.allocations.values_list('pk', flat=True):
        try:
            recalculate_allocation(pk)
            stats['recalculated'] += 1
        except (InvalidAllocation, OverlappingPeriod) as e:
            logger.error(f"[ALLOCATION] Could not recalculate allocation {pk}: {e}")
            stats['errors'].append({'allocation_id': pk, 'error': str(e)})
    return stats


@transaction.atomic
def recalculate_totals_from_energy(period_totals: FacilityPeriodTotals) -> FacilityPeriodTotals:
    """ Rebuild total and scope 1/2 emissions from the energy inputs. """
    if period_totals.entry_method != FacilityPeriodTotals.ENTRY_CALCULATED_FROM_ENERGY:
        return period_totals
    scope_totals = {'1': Decimal('0'), '2': Decimal('0')}
    for energy_input in period_totals.energy_inputs.all():
        scope_totals[energy_input.scope] += energy_input.calculated_emissions

    period_totals.scope1_emissions = _q(scope_totals['1'])
    period_totals.scope2_emissions = _q(scope_totals['2'])
    period_totals.total_emissions = _q(scope_totals['1'] + scope_totals['2'] + _as_decimal(period_totals.scope3_emissions or 0))
    period_totals.save()
    logger.info(f"[ALLOCATION] Totals {period_totals.pk} recomputed from energy inputs: {period_totals.total_emissions} kgCO2e")
    return period_totals


def lock_period_totals(period_totals: FacilityPeriodTotals) -> FacilityPeriodTotals:
    if period_totals.locked_at is None:
        period_totals.locked_at = timezone.now()
        FacilityPeriodTotals.objects.filter(pk=period_totals.pk, locked_at__isnull=True).update(locked_at=period_totals.locked_at)
    return period_totals


def lock_allocation(record: AllocationRecord) -> AllocationRecord:
    """ Lock an allocation for reporting; locking can promote it to verified. """
    with transaction.atomic():
        locked = AllocationRecord.objects.select_for_update().get(pk=record.pk)
        if locked.locked_at is None:
            locked.locked_at = timezone.now()
            locked.save(update_fields=['locked_at', 'updated_at'])
    return recalculate_allocation(record.pk)


def transition_allocation_status(record: AllocationRecord, new_status: str, user=None, rollback: bool = False) -> AllocationRecord:
    """
    Reviewer-driven status change. Moves forward only, unless an admin asks for a rollback.
    """
    valid = dict(AllocationRecord.STATUS_CHOICES)
    if new_status not in valid:
        raise InvalidStatusTransition(f"Unknown allocation status '{new_status}'")

    with transaction.atomic():
        record = AllocationRecord.objects.select_for_update().get(pk=record.pk)
        current_rank = AllocationRecord.STATUS_RANK[record.status]
        new_rank = AllocationRecord.STATUS_RANK[new_status]

        if new_status == record.status:
            return record
        if new_rank < current_rank or (new_rank == current_rank and record.status == AllocationRecord.STATUS_APPROVED):
            if not rollback:
                raise InvalidStatusTransition(f"Cannot move allocation {record.pk} from {record.status} back to {new_status}")
            if not (user is not None and (user.is_staff or user.is_superuser)):
                raise InvalidStatusTransition("Only administrators can roll back an allocation status")
            logger.warning(f"[ALLOCATION] Admin rollback of allocation {record.pk}: {record.status} -> {new_status} by {user}")

        record.status = new_status
        record.save(update_fields=['status', 'updated_at'])
    return record


# --- Production mix ---

def _mix_tolerance() -> Decimal:
    return Decimal(str(get_setting('PRODUCTION_MIX_TOLERANCE')))


def production_mix_total(product) -> Decimal:
    total = ProductionMixEntry.objects.filter(product=product).aggregate(total=Sum('share'))['total']
    return _as_decimal(total) if total is not None else Decimal('0')


@transaction.atomic
def add_production_mix_entry(product, facility, share) -> ProductionMixEntry:
    """ Add or update one facility's share; the product total may never exceed 1. """
    share = _as_decimal(share)
    if share < 0 or share > 1:
        raise InvalidAllocation(f"Production mix share must be between 0 and 1 (got {share})")
    others = ProductionMixEntry.objects.select_for_update().filter(product=product).exclude(facility=facility)
    total = sum((entry.share for entry in others), Decimal('0')) + share
    if total > Decimal('1') + _mix_tolerance():
        raise IncompleteMix(total)
    entry, _ = ProductionMixEntry.objects.update_or_create(product=product, facility=facility, defaults={'share': share})
    return entry


def production_mix_summary(product) -> dict:
    entries = list(ProductionMixEntry.objects.filter(product=product).select_related('facility'))
    total = sum((entry.share for entry in entries), Decimal('0'))
    return {
        'product_id': product.pk,
        'entries': [{'facility_id': e.facility_id, 'facility': e.facility.name, 'share': str(e.share)} for e in entries],
        'total': str(total),
        'remaining': str(max(Decimal('1') - total, Decimal('0'))),
        'is_single_source': not entries,
        'is_complete': not entries or abs(total - Decimal('1')) <= _mix_tolerance(),
    }


def validate_production_mix(product) -> Decimal:
    """
    Check that a product's mix shares sum to 1 within tolerance.

    A product without mix entries is single-sourced and passes.
    """
    if not ProductionMixEntry.objects.filter(product=product).exists():
        return Decimal('1')
    total = production_mix_total(product)
    if abs(total - Decimal('1')) > _mix_tolerance():
        raise IncompleteMix(total)
    return total


def mark_mix_complete(assessment: ProductAssessment) -> ProductAssessment:
    validate_production_mix(assessment.product)
    if not assessment.is_mix_complete:
        assessment.is_mix_complete = True
        assessment.save(update_fields=['is_mix_complete', 'updated_at'])
    return assessment


def finalise_assessment(assessment: ProductAssessment) -> ProductAssessment:
    """ Mark an assessment completed; blocked while the production mix is incomplete. """
    if assessment.is_finalised:
        raise LockedRecordError(f"Assessment {assessment.pk} is already {assessment.status}")
    mark_mix_complete(assessment)
    assessment.status = ProductAssessment.STATUS_COMPLETED
    assessment.finalised_at = timezone.now()
    assessment.save(update_fields=['status', 'finalised_at', 'updated_at'])
    logger.info(f"[ALLOCATION] Assessment {assessment.pk} finalised")
    return assessment
