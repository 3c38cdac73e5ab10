"""
Tests for summarise and the estimator extension convention
"""

import numpy as np
import pandas as pd
import pytest
from scipy import stats

from svytidy import (
    COEF_PLACEHOLDER, TEMP_VAR, VARTYPES, SurveyContextError, SurveyDesign,
    WeightedStatistics, as_survey, cur_svy, cur_svy_wts, get_var_est, match_arg,
    set_survey_vars, summarise, survey_context, survey_corr, survey_count,
    survey_gini, survey_mean, survey_median, survey_prop, survey_quantile,
    survey_ratio, survey_sd, survey_tally, survey_total, survey_var, unweighted,
)
from svytidy.vartype import critical_value
from test_basic import create_small_data, create_test_data


def small_design():
    return as_survey(create_small_data(), weights='w', repweights='rw')


def survey_p90_p10(x, vartype=VARTYPES, level=0.95, svy=None):
    """Extension written the documented way: ratio of the 90th to 10th percentile"""
    if svy is None:
        svy = cur_svy()
    vartype = match_arg(vartype, VARTYPES, several_ok=True)
    svy = set_survey_vars(svy, x)
    stat = svy.estimate(
        lambda d, w: WeightedStatistics.quantile(d[TEMP_VAR], d[w], 90)
        / WeightedStatistics.quantile(d[TEMP_VAR], d[w], 10)
    )
    return get_var_est(stat, vartype, level=level)


class TestContext:
    """Test the implicit current survey"""

    def test_outside_summarise(self):
        with pytest.raises(SurveyContextError):
            cur_svy()
        with pytest.raises(SurveyContextError):
            cur_svy_wts()

    def test_nested_context(self):
        a = small_design()
        b = a.group_by('g')
        with survey_context(a):
            assert cur_svy() is a
            with survey_context(b):
                assert cur_svy() is b
            assert cur_svy() is a
        with pytest.raises(SurveyContextError):
            cur_svy()

    def test_inside_summarise(self):
        svy = small_design()
        result = svy.summarise(
            n=lambda: len(cur_svy().data),
            wsum=lambda: cur_svy_wts().sum(),
        )
        assert list(result.columns) == ['n', 'wsum']
        assert result['n'][0] == 4
        assert result['wsum'][0] == pytest.approx(4.0)

    def test_context_reset_after_error(self):
        svy = small_design()
        with pytest.raises(ZeroDivisionError):
            svy.summarise(bad=lambda: 1 / 0)
        with pytest.raises(SurveyContextError):
            cur_svy()


class TestTempVars:
    """Test injecting temporary variables"""

    def test_column_name(self):
        svy = small_design()
        new = set_survey_vars(svy, 'x')
        assert list(new.data[TEMP_VAR]) == [1.0, 2.0, 3.0, 4.0]
        assert TEMP_VAR not in svy.data.columns

    def test_vector_and_scalar(self):
        svy = small_design()
        assert list(set_survey_vars(svy, np.arange(4)).data[TEMP_VAR]) == [0, 1, 2, 3]
        assert (set_survey_vars(svy, 7).data[TEMP_VAR] == 7).all()

    def test_wrong_length(self):
        with pytest.raises(ValueError, match="rows"):
            set_survey_vars(small_design(), [1, 2, 3])

    def test_unknown_column(self):
        with pytest.raises(ValueError, match="not found"):
            set_survey_vars(small_design(), 'nope')

    def test_add(self):
        svy = set_survey_vars(small_design(), 'x', name='__SVY_TEMP_A__')
        kept = set_survey_vars(svy, 'w', name='__SVY_TEMP_B__', add=True)
        replaced = set_survey_vars(svy, 'w', name='__SVY_TEMP_B__')

        assert '__SVY_TEMP_A__' in kept.data.columns
        assert '__SVY_TEMP_A__' not in replaced.data.columns
        assert '__SVY_TEMP_B__' in replaced.data.columns


class TestVartype:
    """Test variance-type selection and output formatting"""

    def test_match_arg_default(self):
        assert match_arg(VARTYPES, VARTYPES) == 'se'
        assert match_arg(VARTYPES, VARTYPES, several_ok=True) == ['se']
        assert match_arg(None, VARTYPES) is None

    def test_match_arg_values(self):
        assert match_arg('ci', VARTYPES) == 'ci'
        assert match_arg(['ci', 'cv', 'ci'], VARTYPES, several_ok=True) == ['ci', 'cv']

    def test_match_arg_errors(self):
        with pytest.raises(ValueError):
            match_arg('sd', VARTYPES)
        with pytest.raises(ValueError):
            match_arg(['se', 'ci'], VARTYPES)
        with pytest.raises(ValueError):
            match_arg([], VARTYPES, several_ok=True)

    def test_match_arg_every_choice(self):
        # Naming every choice is not the same as leaving the default
        assert match_arg(['se', 'ci', 'var', 'cv'], VARTYPES, several_ok=True) == list(VARTYPES)
        assert match_arg(list(VARTYPES), VARTYPES, several_ok=True) == list(VARTYPES)
        with pytest.raises(ValueError):
            match_arg(('se', 'ci', 'var', 'cv'), VARTYPES)

    def test_critical_value(self):
        assert critical_value(0.95, np.inf) == pytest.approx(stats.norm.ppf(0.975))
        assert critical_value(0.95, 4) == pytest.approx(stats.t.ppf(0.975, 4))
        with pytest.raises(ValueError, match="degree of freedom"):
            critical_value(0.95, 0)
        with pytest.raises(ValueError, match="degree of freedom"):
            critical_value(0.95, np.nan)

    def test_ci_without_degrees_of_freedom(self):
        svy = as_survey(create_small_data(), weights='w', repweights=['rw1'])
        assert svy.degf() == 0

        with pytest.raises(ValueError, match="degree of freedom"):
            survey_mean('x', vartype='ci', svy=svy)
        out = survey_mean('x', vartype='ci', df=np.inf, svy=svy)
        assert out[COEF_PLACEHOLDER + '_low'][0] < out[COEF_PLACEHOLDER][0]
        # Standard errors need no degrees of freedom
        assert survey_mean('x', svy=svy)[COEF_PLACEHOLDER + '_se'][0] >= 0

    def test_get_var_est(self):
        svy = small_design()
        stat = svy.estimate(lambda d, w: WeightedStatistics.mean(d['x'], d[w]))
        out = get_var_est(stat, ['se', 'ci', 'var', 'cv'])

        base = COEF_PLACEHOLDER
        assert list(out.columns) == [
            base, base + '_se', base + '_low', base + '_upp', base + '_var', base + '_cv'
        ]
        crit = stats.t.ppf(0.975, 1)
        assert out[base + '_low'][0] == pytest.approx(2.5 - crit)
        assert out[base + '_upp'][0] == pytest.approx(2.5 + crit)
        assert out[base + '_var'][0] == pytest.approx(1.0)
        assert out[base + '_cv'][0] == pytest.approx(0.4)

    def test_get_var_est_normal_ci(self):
        stat = small_design().estimate(lambda d, w: WeightedStatistics.mean(d['x'], d[w]))
        out = get_var_est(stat, 'ci', level=0.9, df=np.inf)
        assert out[COEF_PLACEHOLDER + '_upp'][0] == pytest.approx(2.5 + stats.norm.ppf(0.95))

    def test_get_var_est_no_variance(self):
        stat = small_design().estimate(lambda d, w: WeightedStatistics.mean(d['x'], d[w]))
        assert list(get_var_est(stat, None).columns) == [COEF_PLACEHOLDER]

    def test_bad_level(self):
        stat = small_design().estimate(lambda d, w: WeightedStatistics.mean(d['x'], d[w]))
        with pytest.raises(ValueError):
            get_var_est(stat, 'ci', level=95)

    def test_deff_unavailable(self):
        stat = small_design().estimate(lambda d, w: WeightedStatistics.mean(d['x'], d[w]))
        with pytest.raises(ValueError):
            get_var_est(stat, 'se', deff=True)


class TestSummarise:
    """Test the summarise verb"""

    def test_ungrouped(self):
        result = small_design().summarise(m=lambda: survey_mean('x', vartype=['se', 'ci']))

        assert list(result.columns) == ['m', 'm_se', 'm_low', 'm_upp']
        assert len(result) == 1
        assert result['m'][0] == pytest.approx(2.5)
        assert result['m_se'][0] == pytest.approx(1.0)

    def test_default_vartype_is_se(self):
        result = summarise(small_design(), t=lambda: survey_total('x'))
        assert list(result.columns) == ['t', 't_se']
        assert result['t'][0] == pytest.approx(10.0)
        assert result['t_se'][0] == pytest.approx(4.0)

    def test_grouped(self):
        result = small_design().group_by('g').summarize(
            m=lambda: survey_mean('x', vartype=None),
            n=lambda: unweighted(len),
        )

        assert list(result.columns) == ['g', 'm', 'n']
        assert list(result['g']) == ['a', 'b']
        assert list(result['m']) == pytest.approx([1.5, 3.5])
        assert list(result['n']) == [2, 2]

    def test_every_vartype(self):
        result = small_design().summarise(m=lambda: survey_mean('x', vartype=['se', 'ci', 'var', 'cv']))

        assert list(result.columns) == ['m', 'm_se', 'm_low', 'm_upp', 'm_var', 'm_cv']
        assert result['m_var'][0] == pytest.approx(1.0)
        assert result['m_cv'][0] == pytest.approx(0.4)

    def test_missing_group_level(self):
        data = create_small_data()
        data['g'] = ['a', 'a', np.nan, np.nan]
        svy = as_survey(data, weights='w', repweights='rw').group_by('g')
        result = svy.summarise(
            m=lambda: survey_mean('x', vartype=None),
            n=lambda: unweighted(len),
        )

        assert len(result) == 2
        assert result['g'][0] == 'a'
        assert pd.isna(result['g'][1])
        assert list(result['m']) == pytest.approx([1.5, 3.5])
        assert list(result['n']) == [2, 2]

    def test_result_groups_must_match(self):
        svy = small_design().group_by('g')
        with pytest.raises(ValueError, match="groups"):
            svy.summarise(m=lambda: pd.DataFrame({'g': ['a', 'c'], COEF_PLACEHOLDER: [1.0, 2.0]}))
        with pytest.raises(ValueError, match="groups"):
            svy.summarise(m=lambda: pd.DataFrame({'g': ['a', 'a'], COEF_PLACEHOLDER: [1.0, 2.0]}))

    def test_precomputed_value(self):
        svy = small_design()
        result = svy.summarise(m=survey_mean('x', svy=svy), k=3)
        assert list(result.columns) == ['m', 'm_se', 'k']

    def test_unlabeled_columns(self):
        svy = small_design()
        result = svy.summarise(
            extra=lambda: pd.DataFrame({'lo': [1], 'hi': [2]}),
            one=lambda: pd.DataFrame({'value': [5]}),
        )
        assert list(result.columns) == ['extra_lo', 'extra_hi', 'one']

    def test_wrong_row_count(self):
        svy = small_design().group_by('g')
        with pytest.raises(ValueError, match="grouping column"):
            svy.summarise(m=lambda: survey_mean('x', svy=svy.ungroup()))
        with pytest.raises(ValueError, match="rows"):
            svy.summarise(m=lambda: pd.DataFrame({'g': ['a'], COEF_PLACEHOLDER: [1.0]}))

    def test_scalar_on_grouped_design(self):
        svy = small_design().group_by('g')
        with pytest.raises(ValueError, match="one row per group"):
            svy.summarise(n=lambda: 4)

    def test_unsupported_result(self):
        with pytest.raises(TypeError):
            small_design().summarise(n=lambda: [1, 2])

    def test_duplicate_columns(self):
        with pytest.raises(ValueError, match="duplicates"):
            small_design().summarise(a=lambda: survey_mean('x'), a_se=lambda: 1.0)

    def test_custom_extension(self):
        data = create_test_data(300)
        data['INCOME'] = np.exp(np.random.normal(10, 0.5, len(data)))
        svy = SurveyDesign(data, survey='PISA2015').group_by('CNT')

        result = svy.summarise(spread=lambda: survey_p90_p10('INCOME', vartype=['se', 'cv']))

        assert list(result.columns) == ['CNT', 'spread', 'spread_se', 'spread_cv']
        assert len(result) == 2
        assert (result['spread'] > 1).all()

    def test_display(self, capsys):
        small_design().summarise(display=True, m=lambda: survey_mean('x'))
        assert 'SURVEY SUMMARY' in capsys.readouterr().out


class TestEstimators:
    """Test built-in survey estimators"""

    def test_survey_mean(self):
        data = create_test_data(300)
        svy = SurveyDesign(data, survey='PISA2015')
        result = svy.summarise(math=lambda: survey_mean('MATH', vartype=['se', 'ci', 'var', 'cv']))

        assert result['math'][0] == pytest.approx(np.average(data['MATH'], weights=data['W_FSTUWT']))
        assert result['math_se'][0] > 0
        assert result['math_low'][0] < result['math'][0] < result['math_upp'][0]
        assert result['math_var'][0] == pytest.approx(result['math_se'][0]**2)

    def test_survey_mean_plausible_values(self):
        data = create_test_data(300)
        svy = SurveyDesign(data, survey='PISA2015', pv_vars=['PV@MATH']).group_by('CNT')
        result = svy.summarise(math=lambda: survey_mean('PV@MATH'))

        gbr = data[data['CNT'] == 'GBR']
        pv_means = [np.average(gbr[f'PV{i}MATH'], weights=gbr['W_FSTUWT']) for i in range(1, 11)]
        assert result['math'][0] == pytest.approx(np.mean(pv_means))

    def test_survey_mean_deff(self):
        data = create_test_data(300)
        svy = SurveyDesign(data, survey='PISA2015')
        result = svy.summarise(math=lambda: survey_mean('MATH', deff=True))

        assert 'math_deff' in result.columns
        assert result['math_deff'][0] > 0

    def test_survey_mean_vector(self):
        svy = small_design()
        result = svy.summarise(m=lambda: survey_mean(cur_svy().data['x'] * 10, vartype=None))
        assert result['m'][0] == pytest.approx(25.0)

    def test_survey_total_population(self):
        data = create_test_data(300)
        svy = SurveyDesign(data, survey='PISA2015')
        result = svy.summarise(pop=lambda: survey_total(vartype=None))
        assert result['pop'][0] == pytest.approx(data['W_FSTUWT'].sum())

    def test_survey_ratio(self):
        data = create_small_data()
        data['y'] = [2.0, 2.0, 4.0, 4.0]
        svy = as_survey(data, weights='w', repweights='rw')
        result = svy.summarise(r=lambda: survey_ratio('y', 'x'))

        assert result['r'][0] == pytest.approx(1.2)
        assert result['r_se'][0] > 0

    def test_survey_ratio_plausible_values(self):
        data = create_small_data()
        data['rw1'] = data['w']
        data['rw2'] = data['w']
        data['PV1X'] = data['x']
        data['PV2X'] = data['x'] + 2
        data['PV1Y'] = 1.0
        data['PV2Y'] = 2.0
        svy = as_survey(data, weights='w', repweights='rw', pv_vars=['PV@X', 'PV@Y'])

        out = survey_ratio('PV@X', 'PV@Y', vartype='var', svy=svy)

        # Ratios 2.5 and 2.25; replicates add nothing, so only the
        # imputation variance (1 + 1/2) * 0.03125 remains
        assert out[COEF_PLACEHOLDER][0] == pytest.approx(2.375)
        assert out[COEF_PLACEHOLDER + '_var'][0] == pytest.approx(0.046875)

    def test_survey_corr_plausible_values(self):
        data = create_small_data()
        data['rw1'] = data['w']
        data['rw2'] = data['w']
        data['PV1X'] = data['x']
        data['PV2X'] = data['x'] + 2
        data['PV1Y'] = data['x']
        data['PV2Y'] = -data['x']
        svy = as_survey(data, weights='w', repweights='rw', pv_vars=['PV@X', 'PV@Y'])

        out = survey_corr('PV@X', 'PV@Y', vartype='var', svy=svy)

        # Correlations 1 and -1, each value paired with its own plausible value
        assert out[COEF_PLACEHOLDER][0] == pytest.approx(0.0)
        assert out[COEF_PLACEHOLDER + '_var'][0] == pytest.approx(3.0)

    def test_survey_var_and_sd(self):
        svy = small_design()
        result = svy.summarise(v=lambda: survey_var('x', vartype=None), s=lambda: survey_sd('x'))

        expected = np.var([1.0, 2.0, 3.0, 4.0], ddof=1)
        assert result['v'][0] == pytest.approx(expected)
        assert result['s'][0] == pytest.approx(np.sqrt(expected))
        assert list(result.columns) == ['v', 's']

    def test_survey_quantile(self):
        data = create_test_data(300)
        svy = SurveyDesign(data, survey='PISA2015')
        result = svy.summarise(math=lambda: survey_quantile('MATH', quantiles=[0.25, 0.75]))

        assert list(result.columns) == ['math_q25', 'math_q25_se', 'math_q75', 'math_q75_se']
        assert result['math_q25'][0] < result['math_q75'][0]
        assert result['math_q25'][0] == pytest.approx(
            WeightedStatistics.quantile(data['MATH'], data['W_FSTUWT'], 25)
        )

    def test_survey_quantile_bounds(self):
        with pytest.raises(ValueError):
            survey_quantile('x', quantiles=[1.5], svy=small_design())

    def test_survey_median(self):
        svy = small_design()
        result = svy.summarise(med=lambda: survey_median('x', vartype=None))
        assert list(result.columns) == ['med']
        assert result['med'][0] == pytest.approx(WeightedStatistics.quantile([1, 2, 3, 4], [1, 1, 1, 1], 50))

    def test_survey_prop(self):
        data = create_test_data(300)
        svy = SurveyDesign(data, survey='PISA2015').group_by('CNT', 'GENDER')
        result = svy.summarise(share=lambda: survey_mean(vartype=['se', 'ci']))

        assert list(result.columns) == ['CNT', 'GENDER', 'share', 'share_se', 'share_low', 'share_upp']
        assert len(result) == 4
        sums = result.groupby('CNT')['share'].sum()
        assert sums.values == pytest.approx([1.0, 1.0])

        gbr = data[data['CNT'] == 'GBR']
        expected = gbr.loc[gbr['GENDER'] == 0, 'W_FSTUWT'].sum() / gbr['W_FSTUWT'].sum()
        assert result['share'][0] == pytest.approx(expected)

    def test_survey_prop_single_group(self):
        svy = small_design().group_by('g')
        result = svy.summarise(p=lambda: survey_prop(vartype=None))
        assert list(result['p']) == pytest.approx([0.5, 0.5])

    def test_survey_prop_needs_groups(self):
        with pytest.raises(ValueError, match="grouped"):
            survey_prop(svy=small_design())

    def test_survey_gini(self):
        data = create_small_data()
        data['income'] = [0.0, 0.0, 0.0, 1.0]
        data['flat'] = 5.0
        svy = as_survey(data, weights='w', repweights='rw')
        result = svy.summarise(
            gini=lambda: survey_gini('income', vartype=None),
            flat=lambda: survey_gini('flat', vartype=None),
        )

        assert result['gini'][0] == pytest.approx(0.75)
        assert result['flat'][0] == pytest.approx(0.0)

    def test_survey_corr(self):
        data = create_test_data(300)
        data['MATH2'] = data['MATH'] * 2 + 1
        svy = SurveyDesign(data, survey='PISA2015')
        result = svy.summarise(
            c=lambda: survey_corr('MATH', 'READ'),
            same=lambda: survey_corr('MATH', 'MATH2', vartype=None),
        )

        assert -1 <= result['c'][0] <= 1
        assert result['same'][0] == pytest.approx(1.0)

    def test_survey_tally_and_count(self):
        data = create_test_data(300)
        svy = SurveyDesign(data, survey='PISA2015')

        tally = survey_tally(svy.group_by('CNT'))
        count = survey_count(svy, 'CNT', name='pop', vartype=None)

        assert list(tally.columns) == ['CNT', 'n', 'n_se']
        assert list(count.columns) == ['CNT', 'pop']
        gbr = data.loc[data['CNT'] == 'GBR', 'W_FSTUWT'].sum()
        assert count['pop'][0] == pytest.approx(gbr)
        assert tally['n'][0] == pytest.approx(gbr)


if __name__ == '__main__':
    pytest.main([__file__, '-v'])
