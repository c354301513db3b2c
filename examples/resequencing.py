#!/usr/bin/env python3

"""
Resequencing analysis workflow: download a reference chromosome and low-coverage
reads of two individuals, align the reads with BWA and merge the alignments of
each individual into a SAM file.

Requires wget, gunzip and bwa on PATH.
"""

from shellflow import FanOut, ParamGenerator, Sink, Workflow
from shellflow.utils import setup_logging

FASTQ_BASE_URL = 'http://bioinfo.perdanauniversity.edu.my/tein4ngs/ngspractice/'
FASTQ_FILE_PATTERN = '{indv}.ILLUMINA.low_coverage.4p_{smpl}.fq'
REF_BASE_URL = 'http://ftp.ensembl.org/pub/release-75/fasta/homo_sapiens/dna/'
REF_FILE_GZ = 'Homo_sapiens.GRCh37.75.dna.chromosome.17.fa.gz'

INDIVIDUALS = ['NA06984', 'NA12489']
SAMPLES = ['1', '2']


def build_workflow() -> Workflow:
    wf = Workflow('resequencing')
    sink = wf.new_sink()

    download_ref = wf.new_process('download_ref', 'wget -O {o:outfile} ' + REF_BASE_URL + REF_FILE_GZ)
    download_ref.set_path_static('outfile', REF_FILE_GZ)

    ungzip_ref = wf.new_process('ungzip_ref', 'gunzip -c {i:in} > {o:out}')
    ungzip_ref.set_path_replace('in', 'out', '.gz', '')
    ungzip_ref.in_port('in').connect(download_ref.out_port('outfile'))

    # The reference is read by the indexer and by every aligner
    ref_fan_out = wf.new_fan_out('ref_fan_out', ['index_ref'])
    ref_fan_out.in_port('in').connect(ungzip_ref.out_port('out'))

    index_ref = wf.new_process('index_ref', 'bwa index -a bwtsw {i:index}; echo done > {o:done}')
    index_ref.set_path_extend('index', 'done', '.indexed')
    index_ref.in_port('index').connect(ref_fan_out.out_port('index_ref'))

    index_done_fan_out = wf.new_fan_out('index_done_fan_out')
    index_done_fan_out.in_port('in').connect(index_ref.out_port('done'))

    for indv in INDIVIDUALS:
        fastqs = {}
        sais = {}
        for smpl in SAMPLES:
            file_name = FASTQ_FILE_PATTERN.format(indv=indv, smpl=smpl)
            download_fastq = wf.new_process(
                f'download_fastq_{indv}_{smpl}',
                'wget -O {o:fastq} ' + FASTQ_BASE_URL + file_name,
            )
            download_fastq.set_path_static('fastq', file_name)

            fastq_fan_out = wf.new_fan_out(f'fastq_fan_out_{indv}_{smpl}', ['bwa_aln', 'merge'])
            fastq_fan_out.in_port('in').connect(download_fastq.out_port('fastq'))
            fastqs[smpl] = fastq_fan_out.out_port('merge')

            bwa_aln = wf.new_process(
                f'bwa_aln_{indv}_{smpl}',
                'bwa aln {i:ref} {i:fastq} > {o:sai} # {i:idxdone}',
            )
            bwa_aln.set_path_extend('fastq', 'sai', '.sai')
            bwa_aln.in_port('ref').connect(ref_fan_out.add_out_port(f'bwa_aln_{indv}_{smpl}'))
            bwa_aln.in_port('idxdone').connect(index_done_fan_out.add_out_port(f'bwa_aln_{indv}_{smpl}'))
            bwa_aln.in_port('fastq').connect(fastq_fan_out.out_port('bwa_aln'))
            sais[smpl] = bwa_aln.out_port('sai')

        # Lets the merge step name its output after the individual
        indv_param = wf.add(ParamGenerator.constant(f'indv_{indv}', indv))

        merge = wf.new_process(
            f'merge_{indv}',
            'bwa sampe {i:ref} {i:sai1} {i:sai2} {i:fq1} {i:fq2} > {o:merged} # {i:refdone} {p:indv}',
        )
        merge.set_path_custom('merged', lambda inputs, params: f'{params["indv"]}.merged.sam')
        merge.in_port('ref').connect(ref_fan_out.add_out_port(f'bwa_merge_{indv}'))
        merge.in_port('refdone').connect(index_done_fan_out.add_out_port(f'bwa_merge_{indv}'))
        merge.in_port('sai1').connect(sais['1'])
        merge.in_port('sai2').connect(sais['2'])
        merge.in_port('fq1').connect(fastqs['1'])
        merge.in_port('fq2').connect(fastqs['2'])
        merge.param_port('indv').connect(indv_param.out)

        sink.connect(merge.out_port('merged'))

    return wf


if __name__ == '__main__':
    setup_logging()
    build_workflow().run()
